# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Reference data consumed by the consolidation engine.

- ``Company``: identity of a legal entity (owned by the record store).
- ``CompanyCandidate``: a company returned by a search, together with the
  fiscal years for which it has an active (non-archived) statement.
- ``BalanceSheetSnapshot``: one balance sheet per (company, fiscal year).

Snapshots are read-only inputs: the engine never mutates them, and
``with_values`` returns a new snapshot instead of modifying the receiver.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Optional, Union

from .line_items import LineItem


@dataclass(frozen=True)
class Company:
    """A company that can take part in a consolidation perimeter."""

    id: str
    name: str
    bp: Optional[str] = None
    tax_id: Optional[str] = None


@dataclass(frozen=True)
class CompanyCandidate:
    """
    A company eligible for selection, as returned by the record store.

    Attributes
    ----------
    company :
        The company reference data.
    fiscal_years :
        Fiscal years with an active statement, most recent first.
    """

    company: Company
    fiscal_years: tuple[int, ...] = ()

    @property
    def has_statements(self) -> bool:
        return bool(self.fiscal_years)


def _finite_amount(item: LineItem, amount: Any) -> float:
    value = float(amount)
    if not math.isfinite(value):
        raise ValueError(f"Invalid amount for line item '{item.value}': {amount!r}")
    return value


def _zero_values() -> Mapping[LineItem, float]:
    return MappingProxyType({item: 0.0 for item in LineItem})


@dataclass(frozen=True)
class BalanceSheetSnapshot:
    """
    Balance sheet of a single company for a single fiscal year.

    ``values`` always holds an entry for every ``LineItem``; line items that
    were not provided default to 0.0.
    """

    company_id: str
    fiscal_year: int
    values: Mapping[LineItem, float] = field(default_factory=_zero_values)
    is_archived: bool = False
    statement_id: Optional[int] = None

    def __post_init__(self) -> None:
        complete = {item: 0.0 for item in LineItem}
        for key, amount in self.values.items():
            item = LineItem.parse(key)
            complete[item] = _finite_amount(item, amount)
        object.__setattr__(self, "values", MappingProxyType(complete))

    def value(self, item: LineItem) -> float:
        """Return the amount of a line item (0.0 when absent)."""
        return self.values[item]

    def with_values(
        self, updates: Mapping[Union[str, LineItem], float]
    ) -> "BalanceSheetSnapshot":
        """Return a copy of the snapshot with some line items overwritten."""
        merged = dict(self.values)
        for key, amount in updates.items():
            item = LineItem.parse(key)
            merged[item] = _finite_amount(item, amount)
        return BalanceSheetSnapshot(
            company_id=self.company_id,
            fiscal_year=self.fiscal_year,
            values=merged,
            is_archived=self.is_archived,
            statement_id=self.statement_id,
        )

    @classmethod
    def from_mapping(
        cls,
        company_id: str,
        fiscal_year: int,
        raw: Mapping[Any, Any],
        *,
        is_archived: bool = False,
        statement_id: Optional[int] = None,
    ) -> "BalanceSheetSnapshot":
        """Build a snapshot from a ``{line item key: amount}`` mapping.

        ``None`` amounts are treated as 0.0.

        Raises:
            ValueError: if a key is not a known line item, or an amount
                is not a finite number.
        """
        values: dict[LineItem, float] = {}
        for key, amount in raw.items():
            item = LineItem.parse(key)
            if amount is None:
                values[item] = 0.0
                continue
            try:
                values[item] = _finite_amount(item, amount)
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    f"Invalid amount for line item '{item.value}': {amount!r}"
                ) from exc

        return cls(
            company_id=company_id,
            fiscal_year=fiscal_year,
            values=values,
            is_archived=is_archived,
            statement_id=statement_id,
        )
