# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Balance-sheet line items for Group FinSight.

Every balance sheet handled by the application (individual company
snapshots as well as consolidated statements) is described by the same
fixed set of line items. They are modelled as a string-valued enumeration
so that aggregation code iterates the enumeration instead of dispatching
on free-form string keys: a misspelt line item is rejected at parse time
instead of being silently aggregated as zero.

The module also exposes the groups of line items used to compute the
balance-sheet subtotals (non-current assets, current assets, equity,
non-current liabilities, current liabilities).
"""

from enum import Enum
from typing import Union


class LineItem(str, Enum):
    """A balance-sheet line item, valued by its storage/export key."""

    # Assets
    INTANGIBLE_ASSETS = "intangible_assets"
    GOODWILL = "goodwill"
    TANGIBLE_ASSETS = "tangible_assets"
    REAL_ESTATE_INVESTMENTS = "real_estate_investments"
    LONG_TERM_GROUP_INVESTMENTS = "long_term_group_investments"
    LONG_TERM_FINANCIAL_INVESTMENTS = "long_term_financial_investments"
    DEFERRED_TAX_ASSETS = "deferred_tax_assets"
    INVENTORY = "inventory"
    TRADE_RECEIVABLES = "trade_receivables"
    SHORT_TERM_FINANCIAL_INVESTMENTS = "short_term_financial_investments"
    CASH_EQUIVALENTS = "cash_equivalents"

    # Equity
    SHARE_CAPITAL = "share_capital"
    SHARE_PREMIUM = "share_premium"
    LEGAL_RESERVE = "legal_reserve"
    VOLUNTARY_RESERVES = "voluntary_reserves"
    RETAINED_EARNINGS = "retained_earnings"
    CURRENT_YEAR_RESULT = "current_year_result"

    # Liabilities
    LONG_TERM_DEBTS = "long_term_debts"
    SHORT_TERM_DEBTS = "short_term_debts"
    TRADE_PAYABLES = "trade_payables"
    OTHER_CREDITORS = "other_creditors"

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        """Human-readable label used by views and exports."""
        return _LABELS[self]

    @property
    def section(self) -> str:
        """Balance-sheet section: 'asset', 'equity' or 'liability'."""
        if self in EQUITY_ITEMS:
            return "equity"
        if self in NON_CURRENT_LIABILITY_ITEMS or self in CURRENT_LIABILITY_ITEMS:
            return "liability"
        return "asset"

    @classmethod
    def parse(cls, name: Union[str, "LineItem"]) -> "LineItem":
        """
        Convert a key (e.g. 'cash_equivalents') into a LineItem.

        Keys are matched case-insensitively after trimming.

        Raises:
            ValueError: if the key does not name a known line item.
        """
        if isinstance(name, LineItem):
            return name
        key = str(name).strip().lower()
        try:
            return cls(key)
        except ValueError as exc:
            raise ValueError(f"Unknown balance-sheet line item: {name!r}") from exc


_LABELS: dict[LineItem, str] = {
    LineItem.INTANGIBLE_ASSETS: "Intangible assets",
    LineItem.GOODWILL: "Goodwill",
    LineItem.TANGIBLE_ASSETS: "Tangible assets",
    LineItem.REAL_ESTATE_INVESTMENTS: "Real-estate investments",
    LineItem.LONG_TERM_GROUP_INVESTMENTS: "Long-term investments in group companies",
    LineItem.LONG_TERM_FINANCIAL_INVESTMENTS: "Long-term financial investments",
    LineItem.DEFERRED_TAX_ASSETS: "Deferred tax assets",
    LineItem.INVENTORY: "Inventory",
    LineItem.TRADE_RECEIVABLES: "Trade receivables",
    LineItem.SHORT_TERM_FINANCIAL_INVESTMENTS: "Short-term financial investments",
    LineItem.CASH_EQUIVALENTS: "Cash and cash equivalents",
    LineItem.SHARE_CAPITAL: "Share capital",
    LineItem.SHARE_PREMIUM: "Share premium",
    LineItem.LEGAL_RESERVE: "Legal reserve",
    LineItem.VOLUNTARY_RESERVES: "Voluntary reserves",
    LineItem.RETAINED_EARNINGS: "Retained earnings",
    LineItem.CURRENT_YEAR_RESULT: "Result for the year",
    LineItem.LONG_TERM_DEBTS: "Long-term debts",
    LineItem.SHORT_TERM_DEBTS: "Short-term debts",
    LineItem.TRADE_PAYABLES: "Trade payables",
    LineItem.OTHER_CREDITORS: "Other creditors",
}


# ---------------------------------------------------------------------------
# Line-item groups used by subtotals
# ---------------------------------------------------------------------------

# Investments in group companies are eliminated on consolidation and are
# therefore not part of the non-current assets subtotal.
NON_CURRENT_ASSET_ITEMS: tuple[LineItem, ...] = (
    LineItem.INTANGIBLE_ASSETS,
    LineItem.GOODWILL,
    LineItem.TANGIBLE_ASSETS,
    LineItem.REAL_ESTATE_INVESTMENTS,
    LineItem.LONG_TERM_FINANCIAL_INVESTMENTS,
    LineItem.DEFERRED_TAX_ASSETS,
)

CURRENT_ASSET_ITEMS: tuple[LineItem, ...] = (
    LineItem.INVENTORY,
    LineItem.TRADE_RECEIVABLES,
    LineItem.SHORT_TERM_FINANCIAL_INVESTMENTS,
    LineItem.CASH_EQUIVALENTS,
)

EQUITY_ITEMS: tuple[LineItem, ...] = (
    LineItem.SHARE_CAPITAL,
    LineItem.SHARE_PREMIUM,
    LineItem.LEGAL_RESERVE,
    LineItem.VOLUNTARY_RESERVES,
    LineItem.RETAINED_EARNINGS,
    LineItem.CURRENT_YEAR_RESULT,
)

NON_CURRENT_LIABILITY_ITEMS: tuple[LineItem, ...] = (LineItem.LONG_TERM_DEBTS,)

CURRENT_LIABILITY_ITEMS: tuple[LineItem, ...] = (
    LineItem.SHORT_TERM_DEBTS,
    LineItem.TRADE_PAYABLES,
    LineItem.OTHER_CREDITORS,
)
