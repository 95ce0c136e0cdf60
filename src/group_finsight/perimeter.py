# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Consolidation perimeter: the set of companies consolidated together.

A ``Perimeter`` is an immutable, ordered collection of
``ConsolidationMember`` objects for a single fiscal year. All changes go
through explicit transition methods that return a new perimeter:

    with_member(candidate)            append a company (Full, 100 %)
    without_member(company_id)        remove a company
    with_parent(company_id)           designate the parent company
    with_method(company_id, method)   change a member's method
    with_participation(company_id, p) change a member's participation

Invariants enforced at construction:

- at most ``MAX_MEMBERS`` (15) members,
- company ids are unique,
- at most one member is flagged as parent,
- all members share the perimeter's fiscal year.

After adding or removing a member, ``promote_if_parent_missing()`` promotes
the first member when no parent is left, so a non-empty perimeter built
through the transitions always has exactly one parent. The lower bound (two
members) is only checked by ``validate_for_consolidation`` since a perimeter is
naturally built one company at a time.

``PerimeterBuilder`` wraps these transitions in a small mutable object for
interactive workflows such as the CLI.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator, Optional, Union

from .entities import Company, CompanyCandidate
from .errors import (
    CapacityExceeded,
    DuplicateMember,
    InsufficientMembers,
    InvalidParentDesignation,
    InvalidPercentage,
    NoStatementForYear,
)

MIN_MEMBERS = 2
MAX_MEMBERS = 15


class ConsolidationMethod(str, Enum):
    """How a member's figures enter the consolidated balance sheet."""

    FULL = "full"
    PROPORTIONAL = "proportional"
    EQUITY = "equity"

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return _METHOD_LABELS[self]

    @classmethod
    def parse(cls, value: Union[str, "ConsolidationMethod"]) -> "ConsolidationMethod":
        """Parse a method name (also accepts global, proporcional, equivalencia)."""
        if isinstance(value, ConsolidationMethod):
            return value
        key = str(value).strip().lower()
        key = _METHOD_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError as exc:
            raise ValueError(
                f"Unknown consolidation method {value!r}. "
                "Expected one of: full, proportional, equity."
            ) from exc


_METHOD_LABELS = {
    ConsolidationMethod.FULL: "Full integration",
    ConsolidationMethod.PROPORTIONAL: "Proportional integration",
    ConsolidationMethod.EQUITY: "Equity method",
}

_METHOD_ALIASES = {
    "global": "full",
    "proporcional": "proportional",
    "equivalencia": "equity",
}


def _check_percentage(percentage: float) -> float:
    try:
        value = float(percentage)
    except (TypeError, ValueError) as exc:
        raise InvalidPercentage(percentage) from exc
    # NaN fails both comparisons and is rejected as well.
    if not 0.0 <= value <= 100.0:
        raise InvalidPercentage(percentage)
    return value


@dataclass(frozen=True)
class ConsolidationMember:
    """A company taking part in a perimeter, with its consolidation settings."""

    company: Company
    fiscal_year: int
    participation_percentage: float = 100.0
    consolidation_method: ConsolidationMethod = ConsolidationMethod.FULL
    is_parent: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "participation_percentage",
            _check_percentage(self.participation_percentage),
        )
        object.__setattr__(
            self,
            "consolidation_method",
            ConsolidationMethod.parse(self.consolidation_method),
        )

    @property
    def company_id(self) -> str:
        return self.company.id

    @property
    def ownership_ratio(self) -> float:
        """Participation expressed as a fraction in [0, 1]."""
        return self.participation_percentage / 100.0


@dataclass(frozen=True)
class Perimeter:
    """Immutable, ordered set of consolidation members for one fiscal year."""

    fiscal_year: int
    members: tuple[ConsolidationMember, ...] = ()

    def __post_init__(self) -> None:
        members = tuple(self.members)
        object.__setattr__(self, "members", members)

        if len(members) > MAX_MEMBERS:
            raise CapacityExceeded(MAX_MEMBERS)

        seen: set[str] = set()
        for m in members:
            if m.company_id in seen:
                raise DuplicateMember(m.company_id)
            seen.add(m.company_id)
            if m.fiscal_year != self.fiscal_year:
                raise ValueError(
                    f"Member {m.company_id!r} is set for fiscal year "
                    f"{m.fiscal_year}, perimeter is for {self.fiscal_year}."
                )

        parents = sum(1 for m in members if m.is_parent)
        if parents > 1:
            raise InvalidParentDesignation(parents)

    # -- queries -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.members)

    def __iter__(self) -> Iterator[ConsolidationMember]:
        return iter(self.members)

    def __contains__(self, company_id: object) -> bool:
        return any(m.company_id == company_id for m in self.members)

    @property
    def company_ids(self) -> tuple[str, ...]:
        return tuple(m.company_id for m in self.members)

    @property
    def parent(self) -> Optional[ConsolidationMember]:
        return next((m for m in self.members if m.is_parent), None)

    @property
    def subsidiaries(self) -> tuple[ConsolidationMember, ...]:
        return tuple(m for m in self.members if not m.is_parent)

    def get(self, company_id: str) -> Optional[ConsolidationMember]:
        return next((m for m in self.members if m.company_id == company_id), None)

    # -- transitions ---------------------------------------------------------

    def with_member(self, candidate: CompanyCandidate) -> "Perimeter":
        """
        Return a perimeter with ``candidate`` appended.

        The new member uses full integration at 100 % and becomes the parent
        when the perimeter was empty. A perimeter without a parent gets its
        first member promoted.

        Raises:
            CapacityExceeded: the perimeter already holds MAX_MEMBERS companies.
            DuplicateMember: the company is already in the perimeter.
            NoStatementForYear: the company has no active statement for the
                perimeter's fiscal year.
        """
        if len(self.members) >= MAX_MEMBERS:
            raise CapacityExceeded(MAX_MEMBERS)

        company = candidate.company
        if company.id in self:
            raise DuplicateMember(company.id)

        if self.fiscal_year not in candidate.fiscal_years:
            raise NoStatementForYear(company.id, self.fiscal_year)

        member = ConsolidationMember(
            company=company,
            fiscal_year=self.fiscal_year,
            participation_percentage=100.0,
            consolidation_method=ConsolidationMethod.FULL,
            is_parent=len(self.members) == 0,
        )
        return replace(
            self, members=self.members + (member,)
        ).promote_if_parent_missing()

    def without_member(self, company_id: str) -> "Perimeter":
        """Return a perimeter without ``company_id`` (unchanged if absent)."""
        remaining = tuple(m for m in self.members if m.company_id != company_id)
        return replace(self, members=remaining).promote_if_parent_missing()

    def promote_if_parent_missing(self) -> "Perimeter":
        """Make the first member the parent when no parent is designated."""
        if not self.members or self.parent is not None:
            return self
        first = replace(self.members[0], is_parent=True)
        return replace(self, members=(first,) + self.members[1:])

    def with_parent(self, company_id: str) -> "Perimeter":
        """Designate ``company_id`` as the only parent (unchanged if absent)."""
        if company_id not in self:
            return self
        members = tuple(
            replace(m, is_parent=(m.company_id == company_id)) for m in self.members
        )
        return replace(self, members=members)

    def with_method(
        self, company_id: str, method: Union[str, ConsolidationMethod]
    ) -> "Perimeter":
        method = ConsolidationMethod.parse(method)
        return self._update_member(company_id, consolidation_method=method)

    def with_participation(self, company_id: str, percentage: float) -> "Perimeter":
        """
        Change a member's participation percentage.

        Raises:
            InvalidPercentage: ``percentage`` lies outside [0, 100], whether
                or not the company is in the perimeter.
        """
        value = _check_percentage(percentage)
        return self._update_member(company_id, participation_percentage=value)

    def _update_member(self, company_id: str, **changes) -> "Perimeter":
        members = tuple(
            replace(m, **changes) if m.company_id == company_id else m
            for m in self.members
        )
        return replace(self, members=members)


def validate_for_consolidation(perimeter: Perimeter) -> None:
    """
    Check that a perimeter can be consolidated.

    Raises:
        InsufficientMembers: fewer than MIN_MEMBERS companies.
        InvalidParentDesignation: no parent company is designated.
    """
    if len(perimeter) < MIN_MEMBERS:
        raise InsufficientMembers(len(perimeter), MIN_MEMBERS)
    if perimeter.parent is None:
        raise InvalidParentDesignation(0)


class PerimeterBuilder:
    """Mutable front-end over ``Perimeter`` transitions.

    Each method replaces the current perimeter with the result of the
    corresponding transition. When a transition raises, the current
    perimeter is left untouched.
    """

    def __init__(self, fiscal_year: int, perimeter: Optional[Perimeter] = None):
        if perimeter is not None and perimeter.fiscal_year != fiscal_year:
            raise ValueError(
                f"Perimeter is for fiscal year {perimeter.fiscal_year}, "
                f"builder is for {fiscal_year}."
            )
        self._perimeter = perimeter or Perimeter(fiscal_year=fiscal_year)

    @property
    def perimeter(self) -> Perimeter:
        return self._perimeter

    @property
    def fiscal_year(self) -> int:
        return self._perimeter.fiscal_year

    def add_member(
        self, candidate: CompanyCandidate, fiscal_year: Optional[int] = None
    ) -> ConsolidationMember:
        if fiscal_year is not None and fiscal_year != self.fiscal_year:
            # A statement for another year cannot feed this perimeter.
            raise NoStatementForYear(candidate.company.id, self.fiscal_year)
        self._perimeter = self._perimeter.with_member(candidate)
        return self._perimeter.members[-1]

    def remove_member(self, company_id: str) -> None:
        self._perimeter = self._perimeter.without_member(company_id)

    def set_parent(self, company_id: str) -> None:
        self._perimeter = self._perimeter.with_parent(company_id)

    def set_method(
        self, company_id: str, method: Union[str, ConsolidationMethod]
    ) -> None:
        self._perimeter = self._perimeter.with_method(company_id, method)

    def set_participation(self, company_id: str, percentage: float) -> None:
        self._perimeter = self._perimeter.with_participation(company_id, percentage)

    def validate(self) -> Perimeter:
        validate_for_consolidation(self._perimeter)
        return self._perimeter
