# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Field aggregation: sum every balance-sheet line item across a perimeter.

For each ``LineItem`` the aggregated value is the sum of each member's
contribution, which depends on the member's consolidation method:

- Full:          100 % of the member's value,
- Proportional:  value x participation / 100,
- Equity:        delegated to an ``EquityMethodStrategy``.

The default equity strategy (``equity_at_full_value``) adds equity-method
companies at full value, exactly like full integration. This is not the
textbook equity method (which would reduce the investee to a single
net-investment line) but it is the behaviour consolidated statements have
historically been produced with. ``equity_excluded`` is available as an
alternative and can be selected in the configuration.

The aggregator is pure and total: members without a balance sheet
contribute 0 to every line and are reported in
``AggregationResult.missing_company_ids`` so that callers can warn about a
partial result.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Callable

from .entities import BalanceSheetSnapshot
from .line_items import LineItem
from .perimeter import ConsolidationMember, ConsolidationMethod

logger = logging.getLogger(__name__)

EquityMethodStrategy = Callable[[float, ConsolidationMember], float]
"""Contribution of an equity-method member's value to an aggregated line."""


def equity_at_full_value(value: float, member: ConsolidationMember) -> float:
    """Equity-method members are aggregated at 100 % of their value."""
    return value


def equity_excluded(value: float, member: ConsolidationMember) -> float:
    """Equity-method members do not contribute to aggregated lines."""
    return 0.0


EQUITY_METHOD_STRATEGIES: dict[str, EquityMethodStrategy] = {
    "full_value": equity_at_full_value,
    "excluded": equity_excluded,
}


@dataclass(frozen=True)
class AggregationResult:
    """
    Output of ``aggregate``.

    Attributes
    ----------
    totals :
        Aggregated amount for every line item.
    missing_company_ids :
        Members for which no balance sheet was available, in perimeter order.
    """

    totals: dict[LineItem, float]
    missing_company_ids: tuple[str, ...] = ()


def weighted_value(
    value: float,
    member: ConsolidationMember,
    equity_strategy: EquityMethodStrategy = equity_at_full_value,
) -> float:
    """Apply a member's consolidation method to a raw amount."""
    method = member.consolidation_method
    if method is ConsolidationMethod.FULL:
        return value
    if method is ConsolidationMethod.PROPORTIONAL:
        return value * member.ownership_ratio
    return equity_strategy(value, member)


def member_contribution(
    snapshot: BalanceSheetSnapshot,
    member: ConsolidationMember,
    item: LineItem,
    equity_strategy: EquityMethodStrategy = equity_at_full_value,
) -> float:
    """Contribution of a single member to a single aggregated line item."""
    return weighted_value(snapshot.value(item), member, equity_strategy)


def aggregate(
    balances: Mapping[str, BalanceSheetSnapshot],
    members: Iterable[ConsolidationMember],
    equity_strategy: EquityMethodStrategy = equity_at_full_value,
) -> AggregationResult:
    """Aggregate the balance sheets of a perimeter, line item by line item.

    Args:
        balances: Snapshots keyed by company id.
        members: Perimeter members (a ``Perimeter`` is accepted as well).
        equity_strategy: Treatment of equity-method members.

    Returns:
        An ``AggregationResult`` with one total per ``LineItem``.
    """
    totals: dict[LineItem, float] = {item: 0.0 for item in LineItem}
    missing: list[str] = []

    for member in members:
        snapshot = balances.get(member.company_id)
        if snapshot is None:
            missing.append(member.company_id)
            continue
        for item in LineItem:
            totals[item] += member_contribution(
                snapshot, member, item, equity_strategy
            )

    if missing:
        logger.debug("Aggregation skipped members without balance: %s", missing)

    return AggregationResult(totals=totals, missing_company_ids=tuple(missing))
