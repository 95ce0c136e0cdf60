# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Equity attributable to the parent company.

The computation is expressed as a swappable ``ParentEquityStrategy`` so the
statement composer does not depend on a particular formula.

``parent_equity_with_result_shares`` (default) reproduces the formula used
by the consolidated statements produced so far: the parent's own equity plus
its share of each subsidiary's *result for the year* only. Subsidiaries'
reserves and capital are not taken into account.

``parent_equity_with_equity_shares`` adds the parent's share of each
subsidiary's full equity instead, i.e. the complement of the minority
interests.
"""

from collections.abc import Mapping
from typing import Callable

from .entities import BalanceSheetSnapshot
from .line_items import LineItem
from .minority import subsidiary_equity
from .perimeter import Perimeter

ParentEquityStrategy = Callable[[Perimeter, Mapping[str, BalanceSheetSnapshot]], float]


def parent_own_equity(
    perimeter: Perimeter, balances: Mapping[str, BalanceSheetSnapshot]
) -> float:
    """Equity of the parent from its own balance sheet (0.0 if unavailable)."""
    parent = perimeter.parent
    if parent is None:
        return 0.0
    snapshot = balances.get(parent.company_id)
    if snapshot is None:
        return 0.0
    return subsidiary_equity(snapshot)


def parent_equity_with_result_shares(
    perimeter: Perimeter, balances: Mapping[str, BalanceSheetSnapshot]
) -> float:
    total = parent_own_equity(perimeter, balances)
    for member in perimeter.subsidiaries:
        snapshot = balances.get(member.company_id)
        if snapshot is None:
            continue
        total += snapshot.value(LineItem.CURRENT_YEAR_RESULT) * member.ownership_ratio
    return total


def parent_equity_with_equity_shares(
    perimeter: Perimeter, balances: Mapping[str, BalanceSheetSnapshot]
) -> float:
    total = parent_own_equity(perimeter, balances)
    for member in perimeter.subsidiaries:
        snapshot = balances.get(member.company_id)
        if snapshot is None:
            continue
        total += subsidiary_equity(snapshot) * member.ownership_ratio
    return total


PARENT_EQUITY_STRATEGIES: dict[str, ParentEquityStrategy] = {
    "result_share": parent_equity_with_result_shares,
    "equity_share": parent_equity_with_equity_shares,
}
