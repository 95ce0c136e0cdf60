# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Consolidated statement composition.

This module turns aggregated line items, the parent's equity and the
minority interests into a ``ConsolidatedBalanceSheet``:

    non_current_assets      = intangible + goodwill + tangible
                              + real-estate investments
                              + long-term financial investments
                              + deferred tax assets
    current_assets          = inventory + trade receivables
                              + short-term financial investments + cash
    total_assets            = non_current_assets + current_assets
    non_current_liabilities = long-term debts
    current_liabilities     = short-term debts + trade payables
                              + other creditors
    total_liabilities       = non_current_liabilities + current_liabilities
    total_equity            = equity_parent + minority_interests

Investments in group companies are eliminated: the aggregated amount is
reported separately in ``eliminated_group_investments`` and the line is set
to 0 in ``details``. The consolidation goodwill slot is always 0.

The composer does not enforce ``assets == equity + liabilities``. The
identity is checked afterwards by ``check_balance``, which returns a
structured result instead of raising: with mixed consolidation methods the
two sides can legitimately diverge.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Optional

from .line_items import (
    CURRENT_ASSET_ITEMS,
    CURRENT_LIABILITY_ITEMS,
    NON_CURRENT_ASSET_ITEMS,
    NON_CURRENT_LIABILITY_ITEMS,
    LineItem,
)
from .perimeter import Perimeter

DEFAULT_BALANCE_TOLERANCE = 1.0


@dataclass(frozen=True)
class ConsolidatedBalanceSheet:
    """Result of a consolidation run. Never mutated once built."""

    total_assets: float
    total_equity: float
    total_liabilities: float
    non_current_assets: float
    current_assets: float
    non_current_liabilities: float
    current_liabilities: float
    equity_parent: float
    minority_interests: float
    details: Mapping[LineItem, float]
    consolidation_goodwill: float = 0.0
    eliminated_group_investments: float = 0.0

    def __post_init__(self) -> None:
        details = {item: 0.0 for item in LineItem}
        for key, amount in self.details.items():
            details[LineItem.parse(key)] = float(amount)
        object.__setattr__(self, "details", MappingProxyType(details))

    @property
    def total_equity_and_liabilities(self) -> float:
        return self.total_equity + self.total_liabilities

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict representation (details keyed by line-item names)."""
        return {
            "total_assets": self.total_assets,
            "total_equity": self.total_equity,
            "total_liabilities": self.total_liabilities,
            "non_current_assets": self.non_current_assets,
            "current_assets": self.current_assets,
            "non_current_liabilities": self.non_current_liabilities,
            "current_liabilities": self.current_liabilities,
            "equity_parent": self.equity_parent,
            "minority_interests": self.minority_interests,
            "consolidation_goodwill": self.consolidation_goodwill,
            "eliminated_group_investments": self.eliminated_group_investments,
            "details": {item.value: amount for item, amount in self.details.items()},
        }


@dataclass(frozen=True)
class BalanceCheck:
    """Outcome of the accounting identity check.

    ``difference`` is ``total_assets - (total_equity + total_liabilities)``.
    """

    balanced: bool
    difference: float


@dataclass(frozen=True)
class MembershipRow:
    """One line of the perimeter table printed alongside the statement."""

    company_id: str
    company_name: str
    bp: Optional[str]
    tax_id: Optional[str]
    role: str
    participation_percentage: float
    method: str


def compose_statement(
    totals: Mapping[LineItem, float],
    equity_parent: float,
    minority_interests: float,
) -> ConsolidatedBalanceSheet:
    """Build the consolidated balance sheet from aggregated totals."""
    non_current_assets = sum(totals.get(i, 0.0) for i in NON_CURRENT_ASSET_ITEMS)
    current_assets = sum(totals.get(i, 0.0) for i in CURRENT_ASSET_ITEMS)
    non_current_liabilities = sum(
        totals.get(i, 0.0) for i in NON_CURRENT_LIABILITY_ITEMS
    )
    current_liabilities = sum(totals.get(i, 0.0) for i in CURRENT_LIABILITY_ITEMS)

    details = {item: totals.get(item, 0.0) for item in LineItem}
    eliminated = details[LineItem.LONG_TERM_GROUP_INVESTMENTS]
    details[LineItem.LONG_TERM_GROUP_INVESTMENTS] = 0.0

    return ConsolidatedBalanceSheet(
        total_assets=non_current_assets + current_assets,
        total_equity=equity_parent + minority_interests,
        total_liabilities=non_current_liabilities + current_liabilities,
        non_current_assets=non_current_assets,
        current_assets=current_assets,
        non_current_liabilities=non_current_liabilities,
        current_liabilities=current_liabilities,
        equity_parent=equity_parent,
        minority_interests=minority_interests,
        details=details,
        consolidation_goodwill=0.0,
        eliminated_group_investments=eliminated,
    )


def check_balance(
    sheet: ConsolidatedBalanceSheet, tolerance: float = DEFAULT_BALANCE_TOLERANCE
) -> BalanceCheck:
    """Compare total assets with total equity and liabilities.

    The sheet is balanced when the absolute difference is strictly below
    ``tolerance`` (one currency unit by default).
    """
    difference = sheet.total_assets - sheet.total_equity_and_liabilities
    return BalanceCheck(balanced=abs(difference) < tolerance, difference=difference)


def build_membership_table(perimeter: Perimeter) -> list[MembershipRow]:
    """Describe the perimeter (role, participation, method) for audit/printing."""
    return [
        MembershipRow(
            company_id=m.company_id,
            company_name=m.company.name,
            bp=m.company.bp,
            tax_id=m.company.tax_id,
            role="parent" if m.is_parent else "subsidiary",
            participation_percentage=m.participation_percentage,
            method=m.consolidation_method.value,
        )
        for m in perimeter
    ]
