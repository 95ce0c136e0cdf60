# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Exceptions raised by the consolidation engine.

All errors derive from ``ConsolidationError``, itself a ``ValueError``, so
callers that only care about "bad input" can keep catching ``ValueError``
as they do for the configuration and CSV helpers.

Validation errors (subclasses of ``PerimeterValidationError``) are raised
before any computation takes place and are always recoverable by fixing the
input. Data-completeness and balance problems are *not* exceptions: they are
reported as warnings on the consolidation result.
"""

from typing import Optional


class ConsolidationError(ValueError):
    """Base class for every error raised by Group FinSight."""


class PerimeterValidationError(ConsolidationError):
    """A perimeter (or a change to it) breaks one of its invariants."""


class InsufficientMembers(PerimeterValidationError):
    """The perimeter has fewer members than required to consolidate."""

    def __init__(self, size: int, minimum: int) -> None:
        self.size = size
        self.minimum = minimum
        super().__init__(
            f"At least {minimum} companies are required to consolidate "
            f"(perimeter has {size})."
        )


class CapacityExceeded(PerimeterValidationError):
    """Adding a member would exceed the maximum perimeter size."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"A perimeter cannot contain more than {limit} companies.")


class DuplicateMember(PerimeterValidationError):
    """The company is already part of the perimeter."""

    def __init__(self, company_id: str) -> None:
        self.company_id = company_id
        super().__init__(f"Company {company_id!r} is already in the perimeter.")


class NoStatementForYear(PerimeterValidationError):
    """The company has no active balance sheet for the fiscal year."""

    def __init__(self, company_id: str, fiscal_year: int) -> None:
        self.company_id = company_id
        self.fiscal_year = fiscal_year
        super().__init__(
            f"Company {company_id!r} has no active financial statement "
            f"for fiscal year {fiscal_year}."
        )


class InvalidPercentage(PerimeterValidationError):
    """A participation percentage lies outside [0, 100]."""

    def __init__(self, percentage: float) -> None:
        self.percentage = percentage
        super().__init__(
            f"Participation percentage must be between 0 and 100, got {percentage!r}."
        )


class InvalidParentDesignation(PerimeterValidationError):
    """The perimeter has no parent, or more than one."""

    def __init__(self, parents: int) -> None:
        self.parents = parents
        if parents == 0:
            msg = "No parent company is designated in the perimeter."
        else:
            msg = f"Exactly one parent company is allowed, found {parents}."
        super().__init__(msg)


class InvalidRunState(ConsolidationError):
    """A consolidation run step was invoked in the wrong state."""

    def __init__(self, action: str, state: str, expected: Optional[str] = None) -> None:
        self.action = action
        self.state = state
        msg = f"Cannot {action} a consolidation run in state {state!r}"
        if expected:
            msg += f" (expected {expected!r})"
        super().__init__(msg + ".")


class StaleGroupError(ConsolidationError):
    """A consolidation group was modified since it was last read."""

    def __init__(self, group_id: int, expected: str, actual: str) -> None:
        self.group_id = group_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Consolidation group #{group_id} was updated at {actual}, "
            f"expected {expected}. Reload the group and retry."
        )
