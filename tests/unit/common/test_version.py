from __future__ import annotations

import pytest

from mobile_dev_core.common.version import (
    CodenameComparisonError,
    Version,
    compare,
    same,
    same_or_newer,
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("6", Version(6, 0, 0)),
        ("17.4", Version(17, 4, 0)),
        ("1.0.0", Version(1, 0, 0)),
        ("2-1-2", Version(2, 1, 2)),
        ("  34  ", Version(34, 0, 0)),
        ("0.9", Version(0, 9, 0)),
    ],
)
def test_parse_accepts_numeric_forms(text: str, expected: Version) -> None:
    assert Version.parse(text) == expected


@pytest.mark.parametrize("text", ["3.1-4", "7..8", "001.002", "", "Tiramisu", "1.2.3.4", "v1"])
def test_parse_rejects_mixed_separators_leading_zeros_and_codenames(text: str) -> None:
    assert Version.parse(text) is None


def test_str_is_canonical_and_reparses() -> None:
    v = Version.parse("2-1")
    assert str(v) == "2.1.0"
    assert Version.parse(str(v)) == v


def test_compare_is_reflexive_and_antisymmetric() -> None:
    values = ["1", "1.2", "1.2.3", "28", "34.0.1"]
    for a in values:
        assert compare(a, a) == 0
        for b in values:
            assert compare(a, b) == -compare(b, a)


def test_compare_uses_weighted_numeric_order() -> None:
    assert compare("33", "34") == -1
    assert compare("34.1", "34") == 1
    assert same("34", Version(34))
    assert same_or_newer("13.0", "13")
    assert not same_or_newer("12.4", "13.0")


def test_codename_ranks_newer_than_any_number() -> None:
    assert compare("99.0.0", "Tiramisu") == -1
    assert compare("Tiramisu", Version(99)) == 1
    assert same_or_newer("UpsideDownCake", "34")


def test_identical_codenames_compare_equal_case_insensitively() -> None:
    assert compare("Tiramisu", "tiramisu") == 0


def test_different_codenames_cannot_be_ordered() -> None:
    with pytest.raises(CodenameComparisonError, match="Tiramisu"):
        compare("Tiramisu", "UpsideDownCake")
