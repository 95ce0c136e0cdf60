# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Minority (non-controlling) interests.

For each subsidiary, the share of its own equity held by outside
shareholders is:

    subsidiary_equity = share capital + share premium + legal reserve
                        + voluntary reserves + retained earnings
                        + result for the year
    minority_share    = subsidiary_equity x (100 - participation) / 100

Every non-parent member contributes, whatever its consolidation method.
Subsidiaries without a balance sheet are skipped.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from .entities import BalanceSheetSnapshot
from .line_items import EQUITY_ITEMS
from .perimeter import ConsolidationMember, Perimeter


@dataclass(frozen=True)
class MinorityInterestResult:
    """Minority interests per subsidiary (company id) and in total."""

    by_company: dict[str, float]
    total: float


def subsidiary_equity(snapshot: BalanceSheetSnapshot) -> float:
    """Own equity of a company, from its individual balance sheet."""
    return sum(snapshot.value(item) for item in EQUITY_ITEMS)


def minority_share(
    snapshot: BalanceSheetSnapshot, member: ConsolidationMember
) -> float:
    """Portion of a subsidiary's equity attributable to outside shareholders."""
    return subsidiary_equity(snapshot) * (100.0 - member.participation_percentage) / 100.0


def compute_minority_interests(
    perimeter: Perimeter, balances: Mapping[str, BalanceSheetSnapshot]
) -> MinorityInterestResult:
    by_company: dict[str, float] = {}
    for member in perimeter.subsidiaries:
        snapshot = balances.get(member.company_id)
        if snapshot is None:
            continue
        by_company[member.company_id] = minority_share(snapshot, member)

    return MinorityInterestResult(by_company=by_company, total=sum(by_company.values()))
