"""
Unit tests for MAC address and version helpers.
"""
import pytest

from wearable_device_core.errors import InvalidFormat
from wearable_device_core.identifiers import (
    canonicalize_mac_address,
    compare_versions,
    parse_version,
    validate_mac_address,
)


class TestMacAddress:
    """Test cases for MAC address validation and canonicalization."""

    @pytest.mark.parametrize("mac", [
        "AA:BB:CC:DD:EE:FF",
        "aa:bb:cc:dd:ee:ff",
        "aa-bb-cc-dd-ee-ff",
        "01:23:45:67:89:Ab",
    ])
    def test_valid_addresses(self, mac):
        assert validate_mac_address(mac)

    @pytest.mark.parametrize("mac", [
        "",
        "AABBCCDDEEFF",
        "AA:BB:CC:DD:EE",
        "AA:BB:CC:DD:EE:FF:00",
        "GG:BB:CC:DD:EE:FF",
        "AA:BB-CC:DD-EE:FF",
        "AA.BB.CC.DD.EE.FF",
        " AA:BB:CC:DD:EE:FF",
    ])
    def test_invalid_addresses(self, mac):
        assert not validate_mac_address(mac)

    def test_canonicalize_dashed_lowercase(self):
        assert canonicalize_mac_address("aa-bb-cc-dd-ee-ff") == "AA:BB:CC:DD:EE:FF"

    @pytest.mark.parametrize("mac", [
        "AABBCCDDEEFF",
        "aabb.ccdd.eeff",
        "aa:bb:cc:dd:ee:ff",
        " AA BB CC DD EE FF ",
    ])
    def test_canonicalize_strips_separators(self, mac):
        assert canonicalize_mac_address(mac) == "AA:BB:CC:DD:EE:FF"

    def test_canonical_form_is_unchanged(self):
        assert canonicalize_mac_address("01:23:45:67:89:AB") == "01:23:45:67:89:AB"

    @pytest.mark.parametrize("mac", [
        "AA:BB:CC:DD:EE",
        "AA:BB:CC:DD:EE:FF:00",
        "",
        "not a mac",
    ])
    def test_canonicalize_rejects_wrong_digit_count(self, mac):
        with pytest.raises(InvalidFormat):
            canonicalize_mac_address(mac)

    def test_invalid_format_is_a_value_error(self):
        with pytest.raises(ValueError):
            canonicalize_mac_address("12:34")


class TestVersions:
    """Test cases for version parsing and comparison."""

    def test_parse_simple_version(self):
        assert parse_version("1.2.3") == [1, 2, 3]

    def test_parse_drops_non_numeric_components(self):
        assert parse_version("1.2.beta.4") == [1, 2, 4]
        assert parse_version("v1.2") == [2]
        assert parse_version("1..2") == [1, 2]
        assert parse_version("1.-2.3") == [1, 3]

    def test_parse_reports_dropped_components(self):
        dropped = []
        assert parse_version("2.rc1.0", on_drop=dropped.append) == [2, 0]
        assert dropped == ["rc1"]

    def test_parse_keeps_order(self):
        assert parse_version("10.0.7") == [10, 0, 7]

    @pytest.mark.parametrize("current,latest,expected", [
        ("1.2.3", "1.3.0", True),
        ("1.2.3", "1.2.3", False),
        ("1.2", "1.2.1", True),
        ("1.2.3", None, False),
        ("1.3.0", "1.2.9", False),
        ("2.0", "1.9.9", False),
        ("1.9", "1.10", True),
        ("1.10", "1.9", False),
        ("1.2.0", "1.2", False),
        ("1.2.3", "1.2.4.1", True),
    ])
    def test_compare_versions(self, current, latest, expected):
        assert compare_versions(current, latest) is expected

    def test_first_difference_decides(self):
        # Lower minor version wins over a higher patch component
        assert compare_versions("1.5.0", "1.4.99") is False
