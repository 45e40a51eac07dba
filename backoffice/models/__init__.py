from backoffice.models.inventory.product import Product
from backoffice.models.inventory.product_unit import ProductUnit
from backoffice.models.inventory.barcode_registry import BarcodeRegistry
from backoffice.models.inventory.barcode_counter import BarcodeCounter
from backoffice.models.purchase.supplier import Supplier
from backoffice.models.purchase.supplier_transaction import SupplierTransaction
from backoffice.models.purchase.supplier_transaction_item import SupplierTransactionItem


__all__ = [
    "Product",
    "ProductUnit",
    "BarcodeRegistry",
    "BarcodeCounter",
    "Supplier",
    "SupplierTransaction",
    "SupplierTransactionItem",
]
