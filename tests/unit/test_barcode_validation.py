import pytest
from backoffice.models.shared.enums import BarcodeFormat
from backoffice.services.barcode.barcode_authority_service import BarcodeAuthorityService, gtin13_check_digit

@pytest.fixture
def authority(test_settings):
    # Validation never touches the session
    return BarcodeAuthorityService(None, settings=test_settings)

class TestBarcodeValidation:
    def test_internal_unit_barcode(self, authority):
        result = authority.validate_barcode("GPMSU001001")

        assert result.is_valid
        assert result.format == BarcodeFormat.CODE128
        assert result.parsed.prefix == "GPMS"
        assert result.parsed.type == "unit"
        assert result.parsed.counter == 1001

    def test_internal_product_barcode(self, authority):
        parsed = authority.parse_barcode("GPMSP000042")
        assert parsed.type == "product"
        assert parsed.counter == 42

    def test_gtin13_with_valid_check_digit(self, authority):
        result = authority.validate_barcode("4006381333931")
        assert result.is_valid
        assert result.format == BarcodeFormat.GTIN13

    def test_gtin13_with_bad_check_digit(self, authority):
        result = authority.validate_barcode("4006381333932")
        assert not result.is_valid
        assert result.format == BarcodeFormat.INVALID
        assert "Invalid GTIN-13 check digit" in result.errors

    def test_check_digit(self):
        assert gtin13_check_digit("400638133393") == 1
        assert gtin13_check_digit("590123412345") == 7

    @pytest.mark.parametrize("barcode", ["", None])
    def test_empty(self, authority, barcode):
        result = authority.validate_barcode(barcode)
        assert not result.is_valid
        assert result.errors == ["Barcode is empty"]

    def test_too_short(self, authority):
        result = authority.validate_barcode("GPU")
        assert not result.is_valid
        assert any("at least 4" in e for e in result.errors)

    def test_too_long(self, authority):
        result = authority.validate_barcode("GPMSU" + "1" * 22)
        assert not result.is_valid
        assert any("at most 25" in e for e in result.errors)

    def test_non_ascii(self, authority):
        result = authority.validate_barcode("GPMSU00100é")
        assert not result.is_valid
        assert any("non-ASCII" in e for e in result.errors)

    @pytest.mark.parametrize("barcode", ["GPMSX001001", "gpmsu001001", "GPMSU0010", "1234-5678"])
    def test_wrong_layout(self, authority, barcode):
        result = authority.validate_barcode(barcode)
        assert not result.is_valid
        assert authority.parse_barcode(barcode) is None
