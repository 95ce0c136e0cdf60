import sqlite3

import pytest

from group_finsight.db import (
    DatabaseConfig,
    archive_statement,
    create_group,
    get_balance_sheet,
    get_candidate,
    get_company,
    get_group,
    init_database,
    list_groups,
    list_statements,
    load_consolidated_statement,
    make_snapshot_resolver,
    save_balance_sheet,
    save_consolidated_statement,
    search_companies,
    update_group,
    upsert_company,
)
from group_finsight.engine import consolidate
from group_finsight.entities import BalanceSheetSnapshot, Company
from group_finsight.errors import StaleGroupError
from group_finsight.line_items import LineItem
from group_finsight.perimeter import ConsolidationMethod, PerimeterBuilder

YEAR = 2024


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """Helper to build a DatabaseConfig pointing to a temporary SQLite file."""
    db_path = tmp_path / "test_db.sqlite"
    return DatabaseConfig(engine="sqlite", path=db_path)


def seed_companies(cfg) -> None:
    companies = [
        Company(id="ACME", name="Acme Holding", bp="BP001", tax_id="B12345678"),
        Company(id="SUB1", name="Acme Logistics", bp="BP002"),
        Company(id="JV", name="Harbour Joint Venture", tax_id="B99999999"),
    ]
    for company in companies:
        upsert_company(cfg, company)


def seed_statements(cfg) -> None:
    save_balance_sheet(
        cfg,
        BalanceSheetSnapshot.from_mapping(
            "ACME",
            YEAR,
            {"cash_equivalents": 1000, "share_capital": 800, "short_term_debts": 200},
        ),
    )
    save_balance_sheet(
        cfg,
        BalanceSheetSnapshot.from_mapping(
            "SUB1",
            YEAR,
            {"cash_equivalents": 500, "share_capital": 300, "trade_payables": 200},
        ),
        source="csv",
    )


def build_perimeter(cfg):
    builder = PerimeterBuilder(YEAR)
    builder.add_member(get_candidate(cfg, "ACME"))
    builder.add_member(get_candidate(cfg, "SUB1"))
    builder.set_participation("SUB1", 80)
    return builder.validate()


def test_init_database_creates_file_and_schema(tmp_path):
    """init_database should create the SQLite file and all tables."""
    cfg = make_tmp_db_cfg(tmp_path)

    assert not cfg.path.exists()
    init_database(cfg)
    init_database(cfg)  # idempotent
    assert cfg.path.exists()

    conn = sqlite3.connect(cfg.path)
    try:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
    finally:
        conn.close()

    assert {
        "companies",
        "financial_statements",
        "balance_sheet_lines",
        "consolidation_groups",
        "consolidation_group_members",
        "consolidated_statements",
        "consolidated_statement_lines",
    } <= tables


def test_unsupported_engine_is_rejected(tmp_path):
    cfg = DatabaseConfig(engine="postgres", path=tmp_path / "x.sqlite")
    with pytest.raises(ValueError, match="Unsupported database engine"):
        init_database(cfg)


def test_upsert_company_updates_reference_data(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    upsert_company(cfg, Company(id="ACME", name="Acme"))
    upsert_company(cfg, Company(id="ACME", name="Acme Holding", bp="BP001"))

    company = get_company(cfg, "ACME")
    assert company == Company(id="ACME", name="Acme Holding", bp="BP001", tax_id=None)
    assert get_company(cfg, "NOPE") is None


def test_search_companies_by_name_bp_and_tax_id(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    seed_statements(cfg)

    by_name = search_companies(cfg, "acme")
    assert [c.company.id for c in by_name] == ["ACME", "SUB1"]
    assert by_name[0].fiscal_years == (YEAR,)

    by_bp = search_companies(cfg, "bp002", search_by="bp")
    assert [c.company.id for c in by_bp] == ["SUB1"]

    by_tax = search_companies(cfg, "9999", search_by="tax_id")
    assert [c.company.id for c in by_tax] == ["JV"]
    assert by_tax[0].fiscal_years == ()
    assert by_tax[0].has_statements is False


def test_search_requires_two_characters(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)

    assert search_companies(cfg, "a") == []
    assert search_companies(cfg, " ") == []
    assert len(search_companies(cfg, "ac", limit=1)) == 1


def test_search_treats_like_wildcards_literally(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    upsert_company(cfg, Company(id="PCT", name="Net 100% Trading"))
    upsert_company(cfg, Company(id="UND", name="Acme_Rentals"))

    assert search_companies(cfg, "%%") == []
    assert search_companies(cfg, "__") == []
    assert [c.company.id for c in search_companies(cfg, "0% t")] == ["PCT"]
    assert [c.company.id for c in search_companies(cfg, "acme_")] == ["UND"]


def test_balance_sheet_round_trip_in_cents(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)

    snap = BalanceSheetSnapshot.from_mapping(
        "ACME", YEAR, {"cash_equivalents": 1234.56, "long_term_debts": -0.1}
    )
    statement_id = save_balance_sheet(cfg, snap)
    loaded = get_balance_sheet(cfg, "ACME", YEAR)

    assert loaded.statement_id == statement_id
    assert loaded.value(LineItem.CASH_EQUIVALENTS) == pytest.approx(1234.56)
    assert loaded.value(LineItem.LONG_TERM_DEBTS) == pytest.approx(-0.1)
    assert loaded.value(LineItem.INVENTORY) == 0.0
    assert get_balance_sheet(cfg, "ACME", YEAR + 1) is None


def test_saving_again_replaces_active_statement(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)

    first = save_balance_sheet(
        cfg, BalanceSheetSnapshot.from_mapping("ACME", YEAR, {"inventory": 10})
    )
    second = save_balance_sheet(
        cfg, BalanceSheetSnapshot.from_mapping("ACME", YEAR, {"inventory": 20})
    )

    assert first == second
    assert get_balance_sheet(cfg, "ACME", YEAR).value(LineItem.INVENTORY) == 20.0


def test_save_balance_sheet_for_unknown_company(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    with pytest.raises(ValueError, match="Unknown company"):
        save_balance_sheet(cfg, BalanceSheetSnapshot("GHOST", YEAR))


def test_archived_statement_is_kept_but_not_active(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    seed_statements(cfg)

    assert archive_statement(cfg, "SUB1", YEAR) is True
    assert archive_statement(cfg, "SUB1", YEAR) is False
    assert get_balance_sheet(cfg, "SUB1", YEAR) is None
    assert get_candidate(cfg, "SUB1").fiscal_years == ()

    # A new active statement can be created next to the archived one.
    save_balance_sheet(
        cfg, BalanceSheetSnapshot.from_mapping("SUB1", YEAR, {"inventory": 5})
    )
    statements = list_statements(cfg, "SUB1")
    assert len(statements) == 2
    assert sorted(statements["is_archived"].tolist()) == [False, True]


def test_group_round_trip(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    seed_statements(cfg)
    perimeter = build_perimeter(cfg)

    group = create_group(cfg, "Acme group", perimeter, notes="FY close")
    loaded = get_group(cfg, group.id)

    assert loaded.name == "Acme group"
    assert loaded.status == "draft"
    assert loaded.fiscal_year == YEAR
    assert loaded.perimeter == perimeter
    assert loaded.perimeter.parent.company_id == "ACME"
    assert get_group(cfg, group.id + 100) is None

    df = list_groups(cfg)
    assert df.loc[0, "group_name"] == "Acme group"
    assert df.loc[0, "members"] == 2
    assert df.loc[0, "parent_company_id"] == "ACME"


def test_update_group_replaces_members(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    seed_statements(cfg)
    group = create_group(cfg, "Acme group", build_perimeter(cfg))

    changed = group.perimeter.with_method("SUB1", ConsolidationMethod.PROPORTIONAL)
    changed = changed.with_parent("SUB1")
    updated = update_group(cfg, group.id, perimeter=changed, notes="restated")

    assert updated.perimeter == changed
    assert updated.notes == "restated"
    assert updated.perimeter.parent.company_id == "SUB1"
    assert updated.updated_at >= group.updated_at


def test_update_group_detects_concurrent_change(tmp_path):
    """An update based on a stale read is refused."""
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    seed_statements(cfg)
    group = create_group(cfg, "Acme group", build_perimeter(cfg))

    # Another operator saves first.
    update_group(
        cfg, group.id, notes="first writer", expected_updated_at=group.updated_at
    )

    with pytest.raises(StaleGroupError) as exc_info:
        update_group(
            cfg, group.id, notes="second writer", expected_updated_at=group.updated_at
        )

    assert exc_info.value.group_id == group.id
    assert get_group(cfg, group.id).notes == "first writer"

    # Without expected_updated_at, the last write wins.
    update_group(cfg, group.id, notes="last writer")
    assert get_group(cfg, group.id).notes == "last writer"


def test_update_unknown_group(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    with pytest.raises(ValueError, match="not found"):
        update_group(cfg, 999, notes="x")


def test_group_vanishing_after_write_raises(tmp_path, monkeypatch):
    """A group deleted before it is reloaded surfaces as a ValueError."""
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    seed_statements(cfg)
    perimeter = build_perimeter(cfg)
    group = create_group(cfg, "Acme group", perimeter)

    monkeypatch.setattr("group_finsight.db.get_group", lambda cfg, group_id: None)

    with pytest.raises(ValueError, match="not found"):
        create_group(cfg, "Other group", perimeter)
    with pytest.raises(ValueError, match="not found"):
        update_group(cfg, group.id, notes="x")


def test_consolidated_statement_is_persisted(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_companies(cfg)
    seed_statements(cfg)
    group = create_group(cfg, "Acme group", build_perimeter(cfg))

    result = consolidate(group.perimeter, make_snapshot_resolver(cfg))
    record_id = save_consolidated_statement(cfg, group.id, result)
    loaded = load_consolidated_statement(cfg, group.id, YEAR)

    assert record_id > 0
    assert loaded.total_assets == pytest.approx(1500.0)
    assert loaded.minority_interests == pytest.approx(300 * 0.2)
    assert loaded.details[LineItem.CASH_EQUIVALENTS] == pytest.approx(1500.0)
    assert loaded.equity_parent == pytest.approx(result.balance_sheet.equity_parent)
    assert get_group(cfg, group.id).status == "computed"
    assert load_consolidated_statement(cfg, group.id, YEAR + 1) is None
