import logging

import pytest

from group_finsight.cli import main, parse_member_spec
from group_finsight.config import load_app_config
from group_finsight.db import get_group, load_consolidated_statement
from group_finsight.perimeter import ConsolidationMethod


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "group_finsight_config.toml"
    path.write_text(
        """
[database]
path = "db/test.sqlite"

[consolidation]
fiscal_year = 2024

[display]
mode = "table"
output_dir = "out"

[logging]
level = "ERROR"
""",
        encoding="utf-8",
    )
    return path


def run(config_path, *args):
    main(["--config", str(config_path), *args])


@pytest.fixture
def seeded(tmp_path, config_path):
    """Two companies with a 2024 balance sheet each."""
    (tmp_path / "acme.csv").write_text(
        "line_item,amount\n"
        "tangible_assets,2000\n"
        "share_capital,1500\n"
        "short_term_debts,500\n",
        encoding="utf-8",
    )
    (tmp_path / "sub.csv").write_text(
        "line_item,amount\n"
        "cash_equivalents,800\n"
        "share_capital,600\n"
        "trade_payables,200\n",
        encoding="utf-8",
    )
    run(config_path, "companies", "add", "--id", "ACME", "--name", "Acme Holding")
    run(config_path, "companies", "add", "--id", "SUB1", "--name", "Acme Retail")
    run(
        config_path, "statements", "import", "--company", "ACME", "--year", "2024",
        str(tmp_path / "acme.csv"),
    )
    run(
        config_path, "statements", "import", "--company", "SUB1", "--year", "2024",
        str(tmp_path / "sub.csv"),
    )
    return config_path


def test_parse_member_spec():
    assert parse_member_spec("ACME") == ("ACME", ConsolidationMethod.FULL, 100.0)
    assert parse_member_spec("JV:proportional:50") == (
        "JV",
        ConsolidationMethod.PROPORTIONAL,
        50.0,
    )
    for bad in (":full", "A:bogus", "A:full:half", "A:full:50:x"):
        with pytest.raises(SystemExit):
            parse_member_spec(bad)


def test_version_flag(capsys):
    main(["--version"])
    assert "group_finsight version" in capsys.readouterr().out


def test_search_and_show(seeded, capsys):
    run(seeded, "companies", "search", "acme")
    out = capsys.readouterr().out
    assert "ACME" in out and "SUB1" in out and "2024" in out

    run(seeded, "companies", "search", "a")
    assert "No companies found" in capsys.readouterr().out

    run(seeded, "statements", "show", "--company", "SUB1", "--year", "2024")
    assert "800.00" in capsys.readouterr().out


def test_ad_hoc_consolidation_prints_statement(seeded, capsys):
    run(seeded, "consolidate", "--member", "ACME", "--member", "SUB1:full:80")
    out = capsys.readouterr().out

    assert "=== Perimeter ===" in out
    assert "Consolidated balance sheet - FY 2024" in out
    assert "Balance check:" in out
    assert "total_assets" in out


def test_group_consolidation_is_saved(seeded, tmp_path, capsys):
    run(
        seeded, "groups", "create", "--name", "Acme group",
        "--member", "ACME", "--member", "SUB1:full:80",
    )
    assert "Created consolidation group #1" in capsys.readouterr().out

    run(seeded, "consolidate", "--group", "1", "--save", "--display-mode", "csv")
    out = capsys.readouterr().out

    assert "Saved consolidated statement" in out
    assert (tmp_path / "out" / "consolidated_balance_2024.csv").is_file()

    cfg = load_app_config(str(seeded)).database
    sheet = load_consolidated_statement(cfg, 1, 2024)
    assert sheet.total_assets == pytest.approx(2800.0)
    assert sheet.minority_interests == pytest.approx(600 * 0.2)
    assert get_group(cfg, 1).status == "computed"


def test_excel_export(seeded, tmp_path, capsys):
    run(
        seeded, "consolidate", "--member", "ACME", "--member", "SUB1",
        "--display-mode", "xlsx", "--output", str(tmp_path / "xl"),
    )
    assert (tmp_path / "xl" / "consolidated_2024.xlsx").is_file()


def test_single_member_consolidation_is_rejected(seeded):
    with pytest.raises(SystemExit) as exc_info:
        run(seeded, "consolidate", "--member", "ACME")
    assert "At least 2 companies" in str(exc_info.value)


def test_member_without_statement_is_rejected(seeded):
    run(seeded, "companies", "add", "--id", "NEW", "--name", "Newco")
    with pytest.raises(SystemExit) as exc_info:
        run(seeded, "consolidate", "--member", "ACME", "--member", "NEW")
    assert "no active financial statement" in str(exc_info.value)


def test_unknown_company_is_rejected(seeded):
    with pytest.raises(SystemExit, match="Unknown company"):
        run(seeded, "consolidate", "--member", "ACME", "--member", "GHOST")


def test_save_requires_group(seeded):
    with pytest.raises(SystemExit, match="--save requires --group"):
        run(seeded, "consolidate", "--member", "ACME", "--member", "SUB1", "--save")
