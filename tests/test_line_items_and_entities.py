import pytest

from group_finsight.entities import BalanceSheetSnapshot, Company, CompanyCandidate
from group_finsight.line_items import (
    CURRENT_ASSET_ITEMS,
    CURRENT_LIABILITY_ITEMS,
    EQUITY_ITEMS,
    NON_CURRENT_ASSET_ITEMS,
    NON_CURRENT_LIABILITY_ITEMS,
    LineItem,
)


def test_line_item_groups_cover_every_item_but_group_investments():
    grouped = (
        NON_CURRENT_ASSET_ITEMS
        + CURRENT_ASSET_ITEMS
        + EQUITY_ITEMS
        + NON_CURRENT_LIABILITY_ITEMS
        + CURRENT_LIABILITY_ITEMS
    )
    assert len(grouped) == len(set(grouped))
    assert set(LineItem) - set(grouped) == {LineItem.LONG_TERM_GROUP_INVESTMENTS}


def test_line_item_sections_and_labels():
    assert LineItem.CASH_EQUIVALENTS.section == "asset"
    assert LineItem.LONG_TERM_GROUP_INVESTMENTS.section == "asset"
    assert LineItem.RETAINED_EARNINGS.section == "equity"
    assert LineItem.OTHER_CREDITORS.section == "liability"
    assert all(item.label for item in LineItem)


def test_parse_is_case_insensitive_and_strict():
    assert LineItem.parse(" Cash_Equivalents ") is LineItem.CASH_EQUIVALENTS
    assert LineItem.parse(LineItem.INVENTORY) is LineItem.INVENTORY
    with pytest.raises(ValueError, match="Unknown balance-sheet line item"):
        LineItem.parse("cash")


def test_snapshot_is_complete_and_read_only():
    snap = BalanceSheetSnapshot("ACME", 2024, {"inventory": 5})

    assert set(snap.values) == set(LineItem)
    assert snap.value(LineItem.INVENTORY) == 5.0
    assert snap.value(LineItem.GOODWILL) == 0.0
    with pytest.raises(TypeError):
        snap.values[LineItem.INVENTORY] = 1.0  # type: ignore[index]


def test_snapshot_from_mapping():
    snap = BalanceSheetSnapshot.from_mapping(
        "ACME", 2024, {"share_capital": "1500.5", "legal_reserve": None}, statement_id=7
    )
    assert snap.value(LineItem.SHARE_CAPITAL) == 1500.5
    assert snap.value(LineItem.LEGAL_RESERVE) == 0.0
    assert snap.statement_id == 7

    with pytest.raises(ValueError, match="Invalid amount"):
        BalanceSheetSnapshot.from_mapping("ACME", 2024, {"inventory": "n/a"})
    with pytest.raises(ValueError, match="Unknown balance-sheet line item"):
        BalanceSheetSnapshot.from_mapping("ACME", 2024, {"inventry": 1})


def test_with_values_returns_a_new_snapshot():
    snap = BalanceSheetSnapshot("ACME", 2024, {"inventory": 5}, statement_id=3)
    updated = snap.with_values({"inventory": 9, LineItem.GOODWILL: 2})

    assert updated.value(LineItem.INVENTORY) == 9.0
    assert updated.value(LineItem.GOODWILL) == 2.0
    assert updated.statement_id == 3
    assert snap.value(LineItem.INVENTORY) == 5.0


def test_candidate_has_statements():
    company = Company(id="ACME", name="Acme")
    assert CompanyCandidate(company, (2024,)).has_statements is True
    assert CompanyCandidate(company).has_statements is False


@pytest.mark.parametrize("amount", [float("inf"), float("-inf"), float("nan"), "inf"])
def test_non_finite_amounts_are_rejected(amount):
    with pytest.raises(ValueError, match="line item 'cash_equivalents'"):
        BalanceSheetSnapshot.from_mapping("ACME", 2024, {"cash_equivalents": amount})
    with pytest.raises(ValueError, match="Invalid amount"):
        BalanceSheetSnapshot("ACME", 2024, {"cash_equivalents": amount})
    with pytest.raises(ValueError, match="Invalid amount"):
        BalanceSheetSnapshot("ACME", 2024).with_values({"cash_equivalents": amount})
