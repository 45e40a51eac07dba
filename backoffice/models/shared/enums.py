from enum import Enum

class UnitStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"
    DAMAGED = "damaged"

# Units in these states must carry a registered barcode
ACTIVE_UNIT_STATUSES = (UnitStatus.AVAILABLE, UnitStatus.RESERVED, UnitStatus.SOLD)

class EntityType(str, Enum):
    PRODUCT = "product"
    PRODUCT_UNIT = "product_unit"

class BarcodeType(str, Enum):
    UNIT = "unit"
    PRODUCT = "product"

class BarcodeFormat(str, Enum):
    CODE128 = "CODE128"
    GTIN13 = "GTIN13"
    INVALID = "INVALID"

class TransactionType(str, Enum):
    PURCHASE = "purchase"
    PAYMENT = "payment"
    RETURN = "return"
    RECOVERY = "recovery"

class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# region Integrity

class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"

class IntegrityCheck(str, Enum):
    MISSING_BARCODE = "missing_barcode"
    ORPHANED_REGISTRY_ENTRY = "orphaned_registry_entry"
    DUPLICATE_BARCODE = "duplicate_barcode"
    ZERO_TOTAL_TRANSACTION = "zero_total_transaction"
    ORPHANED_TRANSACTION = "orphaned_transaction"
    UNIT_COUNT_MISMATCH = "unit_count_mismatch"
    TOTAL_MISMATCH = "total_mismatch"
    UNREGISTERED_BARCODE = "unregistered_barcode"

class FixType(str, Enum):
    BARCODE_BACKFILL = "barcode_backfill"
    BARCODE_REGISTRATION = "barcode_registration"
    ORPHANED_REGISTRY_CLEANUP = "orphaned_registry_cleanup"
    ZERO_TOTAL_RECALCULATION = "zero_total_recalculation"
    TOTAL_RECALCULATION = "total_recalculation"
    ORPHANED_CLEANUP = "orphaned_cleanup"

class OrphanType(str, Enum):
    NO_SUPPLIER = "no_supplier"
    NO_TRANSACTION = "no_transaction"

# endregion

# region Coordination

class CoordinationEventType(str, Enum):
    UNIT_CREATED = "unit_created"
    UNIT_UPDATED = "unit_updated"
    BARCODE_GENERATED = "barcode_generated"
    PRINT_REQUESTED = "print_requested"
    SYNC_REQUESTED = "sync_requested"

class ModuleName(str, Enum):
    INVENTORY = "inventory"
    SUPPLIERS = "suppliers"
    SALES = "sales"
    INTEGRITY = "integrity"

# endregion
