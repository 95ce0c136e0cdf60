import pytest

from group_finsight.entities import Company, CompanyCandidate
from group_finsight.errors import (
    CapacityExceeded,
    DuplicateMember,
    InsufficientMembers,
    InvalidParentDesignation,
    InvalidPercentage,
    NoStatementForYear,
    PerimeterValidationError,
)
from group_finsight.perimeter import (
    MAX_MEMBERS,
    ConsolidationMember,
    ConsolidationMethod,
    Perimeter,
    PerimeterBuilder,
    validate_for_consolidation,
)

YEAR = 2024


def candidate(company_id: str, years=(YEAR,)) -> CompanyCandidate:
    return CompanyCandidate(
        company=Company(id=company_id, name=f"Company {company_id}"),
        fiscal_years=tuple(years),
    )


def full_builder(size: int) -> PerimeterBuilder:
    builder = PerimeterBuilder(YEAR)
    for i in range(size):
        builder.add_member(candidate(f"C{i:02d}"))
    return builder


def parents(perimeter: Perimeter) -> list[str]:
    return [m.company_id for m in perimeter if m.is_parent]


def test_first_member_becomes_parent_with_full_method():
    """The first member added is the parent, at full integration and 100 %."""
    builder = PerimeterBuilder(YEAR)
    first = builder.add_member(candidate("A"))
    second = builder.add_member(candidate("B"))

    assert first.is_parent is True
    assert second.is_parent is False
    for member in builder.perimeter:
        assert member.consolidation_method is ConsolidationMethod.FULL
        assert member.participation_percentage == 100.0
    assert builder.perimeter.company_ids == ("A", "B")


def test_sixteenth_member_is_rejected_and_perimeter_unchanged():
    """Adding a 16th member raises CapacityExceeded and keeps 15 members."""
    builder = full_builder(MAX_MEMBERS)
    before = builder.perimeter

    with pytest.raises(CapacityExceeded) as exc_info:
        builder.add_member(candidate("EXTRA"))

    assert exc_info.value.limit == MAX_MEMBERS
    assert len(builder.perimeter) == MAX_MEMBERS
    assert builder.perimeter is before


def test_duplicate_member_is_rejected():
    builder = full_builder(2)
    with pytest.raises(DuplicateMember) as exc_info:
        builder.add_member(candidate("C00"))
    assert exc_info.value.company_id == "C00"
    assert len(builder.perimeter) == 2


def test_member_without_statement_for_year_is_rejected():
    """A company with no active statement for the fiscal year cannot join."""
    builder = PerimeterBuilder(YEAR)
    with pytest.raises(NoStatementForYear) as exc_info:
        builder.add_member(candidate("OLD", years=(YEAR - 1,)))

    assert exc_info.value.company_id == "OLD"
    assert exc_info.value.fiscal_year == YEAR
    assert len(builder.perimeter) == 0


def test_add_member_for_another_fiscal_year_is_rejected():
    builder = PerimeterBuilder(YEAR)
    with pytest.raises(NoStatementForYear):
        builder.add_member(candidate("A", years=(YEAR, YEAR + 1)), fiscal_year=YEAR + 1)


def test_removing_parent_promotes_remaining_member():
    """Removing the parent of a 2-member perimeter promotes the other one."""
    builder = full_builder(2)
    builder.remove_member("C00")

    assert builder.perimeter.company_ids == ("C01",)
    assert parents(builder.perimeter) == ["C01"]


def test_removing_parent_promotes_first_remaining_member():
    builder = full_builder(4)
    builder.set_parent("C02")
    builder.remove_member("C02")

    assert parents(builder.perimeter) == ["C00"]


def test_removing_last_member_leaves_empty_perimeter():
    builder = full_builder(1)
    builder.remove_member("C00")
    assert len(builder.perimeter) == 0
    assert builder.perimeter.parent is None


def test_set_parent_keeps_a_single_parent():
    builder = full_builder(3)
    builder.set_parent("C01")
    assert parents(builder.perimeter) == ["C01"]

    builder.set_parent("C02")
    assert parents(builder.perimeter) == ["C02"]


def test_set_parent_on_unknown_company_is_a_no_op():
    builder = full_builder(2)
    before = builder.perimeter
    builder.set_parent("NOPE")
    assert builder.perimeter == before


def test_single_parent_holds_after_any_sequence_of_operations():
    """Exactly one parent remains after adds, removals and parent changes."""
    builder = PerimeterBuilder(YEAR)
    operations = [
        ("add", "A"),
        ("add", "B"),
        ("add", "C"),
        ("parent", "B"),
        ("remove", "B"),
        ("add", "D"),
        ("parent", "D"),
        ("remove", "A"),
        ("remove", "D"),
        ("add", "E"),
    ]
    for op, company_id in operations:
        if op == "add":
            builder.add_member(candidate(company_id))
        elif op == "remove":
            builder.remove_member(company_id)
        else:
            builder.set_parent(company_id)
        assert len(parents(builder.perimeter)) == 1


def test_set_method_and_participation():
    builder = full_builder(2)
    builder.set_method("C01", "proportional")
    builder.set_participation("C01", 60)

    member = builder.perimeter.get("C01")
    assert member.consolidation_method is ConsolidationMethod.PROPORTIONAL
    assert member.participation_percentage == 60.0
    assert member.ownership_ratio == pytest.approx(0.6)


@pytest.mark.parametrize("pct", [-0.01, 100.5, float("nan"), "abc"])
def test_invalid_percentage_is_rejected(pct):
    builder = full_builder(2)
    before = builder.perimeter

    with pytest.raises(InvalidPercentage):
        builder.set_participation("C01", pct)
    assert builder.perimeter == before


def test_invalid_percentage_is_rejected_for_unknown_company():
    builder = full_builder(2)
    with pytest.raises(InvalidPercentage):
        builder.set_participation("NOPE", 150)


def test_boundary_percentages_are_accepted():
    builder = full_builder(2)
    builder.set_participation("C01", 0)
    assert builder.perimeter.get("C01").participation_percentage == 0.0
    builder.set_participation("C01", 100)
    assert builder.perimeter.get("C01").participation_percentage == 100.0


def test_method_aliases_are_parsed():
    assert ConsolidationMethod.parse("global") is ConsolidationMethod.FULL
    assert ConsolidationMethod.parse("Proporcional") is ConsolidationMethod.PROPORTIONAL
    assert ConsolidationMethod.parse("equivalencia") is ConsolidationMethod.EQUITY
    with pytest.raises(ValueError):
        ConsolidationMethod.parse("partial")


def test_transitions_return_new_perimeters():
    """Perimeter transitions never modify the original value."""
    empty = Perimeter(fiscal_year=YEAR)
    one = empty.with_member(candidate("A"))
    two = one.with_member(candidate("B"))
    moved = two.with_parent("B")

    assert len(empty) == 0
    assert len(one) == 1
    assert parents(two) == ["A"]
    assert parents(moved) == ["B"]


def test_perimeter_rejects_two_parents():
    members = tuple(
        ConsolidationMember(
            company=Company(id=cid, name=cid), fiscal_year=YEAR, is_parent=True
        )
        for cid in ("A", "B")
    )
    with pytest.raises(InvalidParentDesignation):
        Perimeter(fiscal_year=YEAR, members=members)


def test_validation_requires_two_members():
    """A 1-member perimeter cannot be consolidated."""
    builder = full_builder(1)
    with pytest.raises(InsufficientMembers) as exc_info:
        builder.validate()
    assert exc_info.value.size == 1
    assert isinstance(exc_info.value, PerimeterValidationError)


def test_validation_requires_a_parent():
    members = tuple(
        ConsolidationMember(company=Company(id=cid, name=cid), fiscal_year=YEAR)
        for cid in ("A", "B")
    )
    perimeter = Perimeter(fiscal_year=YEAR, members=members)
    with pytest.raises(InvalidParentDesignation):
        validate_for_consolidation(perimeter)

    validate_for_consolidation(perimeter.promote_if_parent_missing())


def test_adding_a_member_to_a_parentless_perimeter_promotes_the_first():
    """A perimeter built without a parent gets one on the next addition."""
    only = ConsolidationMember(company=Company(id="A", name="A"), fiscal_year=YEAR)
    orphan = Perimeter(fiscal_year=YEAR, members=(only,))
    assert orphan.parent is None

    grown = orphan.with_member(candidate("B"))

    assert parents(grown) == ["A"]
    validate_for_consolidation(grown)
