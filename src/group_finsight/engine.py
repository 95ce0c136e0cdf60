# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Consolidation engine for Group FinSight.

This module orchestrates a consolidation run over a validated perimeter.
The run goes through the following states:

    BUILDING -> VALIDATED -> COMPUTED -> (optionally) PERSISTED
         \\
          -> REJECTED (validation failed; the perimeter must be fixed and a
                       new run started)

1. Validation
   ----------
   ``ConsolidationRun.validate()`` applies ``validate_for_consolidation``
   (at least two members, one parent). Perimeter construction has already
   enforced the other invariants (capacity, unique companies, at most one
   parent).

2. Computation
   -----------
   ``ConsolidationRun.compute(resolver)``:
   - fetches every member's balance sheet through ``resolver`` before any
     arithmetic takes place (archived snapshots are treated as missing),
   - aggregates line items (``aggregation.aggregate``),
   - computes minority interests and the parent's equity,
   - composes the consolidated balance sheet,
   - checks the accounting identity,
   - collects warnings (missing balance sheets, unbalanced result).

   The computation is a pure function of (perimeter, snapshots): running it
   twice on the same inputs yields identical results.

3. Persistence
   -----------
   Persisting the result is the caller's job (see ``db.py``). Once done,
   ``mark_persisted()`` records the identifier of the stored artifact.

``consolidate()`` is a shortcut for validate + compute.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Optional

from .aggregation import EquityMethodStrategy, aggregate, equity_at_full_value
from .entities import BalanceSheetSnapshot
from .errors import InvalidRunState, PerimeterValidationError
from .minority import compute_minority_interests
from .parent_equity import ParentEquityStrategy, parent_equity_with_result_shares
from .perimeter import Perimeter, validate_for_consolidation
from .statement import (
    DEFAULT_BALANCE_TOLERANCE,
    BalanceCheck,
    ConsolidatedBalanceSheet,
    MembershipRow,
    build_membership_table,
    check_balance,
    compose_statement,
)

logger = logging.getLogger(__name__)

SnapshotResolver = Callable[[str, int], Optional[BalanceSheetSnapshot]]
"""(company_id, fiscal_year) -> snapshot, or None when not found."""


class RunState(str, Enum):
    BUILDING = "building"
    VALIDATED = "validated"
    COMPUTED = "computed"
    PERSISTED = "persisted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ConsolidationWarning:
    """
    Non-fatal problem detected while consolidating.

    Attributes
    ----------
    code :
        'missing_statement' (a member had no usable balance sheet, the
        result is partial) or 'unbalanced' (assets differ from equity plus
        liabilities).
    message :
        Human-readable description, suitable for display.
    company_id :
        Company concerned, when the warning relates to a single member.
    """

    code: str
    message: str
    company_id: Optional[str] = None


@dataclass(frozen=True)
class ConsolidationResult:
    """Everything produced by a consolidation run."""

    fiscal_year: int
    balance_sheet: ConsolidatedBalanceSheet
    balance_check: BalanceCheck
    warnings: tuple[ConsolidationWarning, ...]
    membership: tuple[MembershipRow, ...]
    snapshots: Mapping[str, BalanceSheetSnapshot]
    minority_by_company: Mapping[str, float]

    @property
    def is_partial(self) -> bool:
        return any(w.code == "missing_statement" for w in self.warnings)


def fetch_snapshots(
    perimeter: Perimeter, resolver: SnapshotResolver
) -> dict[str, BalanceSheetSnapshot]:
    """Resolve the active balance sheet of every member, skipping missing ones."""
    snapshots: dict[str, BalanceSheetSnapshot] = {}
    for member in perimeter:
        snapshot = resolver(member.company_id, perimeter.fiscal_year)
        if snapshot is None:
            continue
        if snapshot.is_archived:
            logger.warning(
                "Ignoring archived statement of %s for %s",
                member.company_id,
                perimeter.fiscal_year,
            )
            continue
        snapshots[member.company_id] = snapshot
    return snapshots


def compute_consolidation(
    perimeter: Perimeter,
    snapshots: Mapping[str, BalanceSheetSnapshot],
    *,
    equity_strategy: EquityMethodStrategy = equity_at_full_value,
    parent_equity_strategy: ParentEquityStrategy = parent_equity_with_result_shares,
    balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE,
) -> ConsolidationResult:
    """Consolidate already-fetched snapshots. Pure: no I/O, no mutation."""
    aggregation = aggregate(snapshots, perimeter, equity_strategy)
    minority = compute_minority_interests(perimeter, snapshots)
    equity_parent = parent_equity_strategy(perimeter, snapshots)

    sheet = compose_statement(
        aggregation.totals,
        equity_parent=equity_parent,
        minority_interests=minority.total,
    )
    balance = check_balance(sheet, balance_tolerance)

    warnings: list[ConsolidationWarning] = []
    for company_id in aggregation.missing_company_ids:
        member = perimeter.get(company_id)
        name = member.company.name if member is not None else company_id
        warnings.append(
            ConsolidationWarning(
                code="missing_statement",
                message=(
                    f"No balance sheet for {name} ({company_id}) in fiscal year "
                    f"{perimeter.fiscal_year}; its figures are counted as 0."
                ),
                company_id=company_id,
            )
        )
    if not balance.balanced:
        warnings.append(
            ConsolidationWarning(
                code="unbalanced",
                message=(
                    "Total assets differ from total equity and liabilities by "
                    f"{balance.difference:.2f}."
                ),
            )
        )

    return ConsolidationResult(
        fiscal_year=perimeter.fiscal_year,
        balance_sheet=sheet,
        balance_check=balance,
        warnings=tuple(warnings),
        membership=tuple(build_membership_table(perimeter)),
        snapshots=MappingProxyType(dict(snapshots)),
        minority_by_company=MappingProxyType(dict(minority.by_company)),
    )


class ConsolidationRun:
    """A single consolidation attempt over a perimeter."""

    def __init__(
        self,
        perimeter: Perimeter,
        *,
        equity_strategy: EquityMethodStrategy = equity_at_full_value,
        parent_equity_strategy: ParentEquityStrategy = parent_equity_with_result_shares,
        balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE,
    ) -> None:
        self.perimeter = perimeter
        self.equity_strategy = equity_strategy
        self.parent_equity_strategy = parent_equity_strategy
        self.balance_tolerance = balance_tolerance

        self.state = RunState.BUILDING
        self.result: Optional[ConsolidationResult] = None
        self.rejection_reason: Optional[str] = None
        self.record_id: Optional[int] = None

    def _require(self, action: str, expected: RunState) -> None:
        if self.state is not expected:
            raise InvalidRunState(action, self.state.value, expected.value)

    def validate(self) -> None:
        """Move to VALIDATED, or to REJECTED and re-raise the validation error."""
        self._require("validate", RunState.BUILDING)
        try:
            validate_for_consolidation(self.perimeter)
        except PerimeterValidationError as exc:
            self.state = RunState.REJECTED
            self.rejection_reason = str(exc)
            logger.info("Consolidation run rejected: %s", exc)
            raise
        self.state = RunState.VALIDATED

    def compute(self, resolver: SnapshotResolver) -> ConsolidationResult:
        self._require("compute", RunState.VALIDATED)

        snapshots = fetch_snapshots(self.perimeter, resolver)
        result = compute_consolidation(
            self.perimeter,
            snapshots,
            equity_strategy=self.equity_strategy,
            parent_equity_strategy=self.parent_equity_strategy,
            balance_tolerance=self.balance_tolerance,
        )
        for warning in result.warnings:
            logger.warning(warning.message)

        self.result = result
        self.state = RunState.COMPUTED
        logger.info(
            "Consolidated %d companies for fiscal year %s (total assets %.2f)",
            len(self.perimeter),
            self.perimeter.fiscal_year,
            result.balance_sheet.total_assets,
        )
        return result

    def mark_persisted(self, record_id: int) -> None:
        self._require("persist", RunState.COMPUTED)
        self.record_id = record_id
        self.state = RunState.PERSISTED


def consolidate(
    perimeter: Perimeter,
    resolver: SnapshotResolver,
    *,
    equity_strategy: EquityMethodStrategy = equity_at_full_value,
    parent_equity_strategy: ParentEquityStrategy = parent_equity_with_result_shares,
    balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE,
) -> ConsolidationResult:
    """Validate ``perimeter`` and consolidate it in one call.

    Raises:
        PerimeterValidationError: the perimeter cannot be consolidated.
    """
    run = ConsolidationRun(
        perimeter,
        equity_strategy=equity_strategy,
        parent_equity_strategy=parent_equity_strategy,
        balance_tolerance=balance_tolerance,
    )
    run.validate()
    return run.compute(resolver)
