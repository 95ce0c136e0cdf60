import pytest

from group_finsight.aggregation import equity_at_full_value, equity_excluded
from group_finsight.config import (
    load_app_config,
    resolve_equity_strategy,
    resolve_parent_equity_strategy,
)
from group_finsight.parent_equity import (
    parent_equity_with_equity_shares,
    parent_equity_with_result_shares,
)


def write_config(tmp_path, content: str):
    path = tmp_path / "group_finsight_config.toml"
    path.write_text(content, encoding="utf-8")
    return path


def test_load_full_config(tmp_path):
    path = write_config(
        tmp_path,
        """
[database]
engine = "sqlite"
path = "db/groups.sqlite"

[consolidation]
fiscal_year = 2024
equity_method = "excluded"
parent_equity = "equity_share"
balance_tolerance = 0.5

[display]
mode = "both"
view = "regular"
output_dir = "reports"
amount_decimals = 0

[logging]
level = "debug"
file = "logs/run.log"
""",
    )

    config = load_app_config(str(path))

    assert config.database.engine == "sqlite"
    assert config.database.path == (tmp_path / "db" / "groups.sqlite").resolve()
    assert config.consolidation.default_fiscal_year == 2024
    assert config.consolidation.equity_method == "excluded"
    assert config.consolidation.parent_equity == "equity_share"
    assert config.consolidation.balance_tolerance == 0.5
    assert config.display.mode == "both"
    assert config.display.view == "regular"
    assert config.display.output_dir == (tmp_path / "reports").resolve()
    assert config.display.amount_decimals == 0
    assert config.logging.level == "DEBUG"
    assert config.logging.file == (tmp_path / "logs" / "run.log").resolve()


def test_defaults_apply_to_missing_sections(tmp_path):
    config = load_app_config(str(write_config(tmp_path, "")))

    assert config.database.path == (
        tmp_path / "data" / "db" / "group_finsight.sqlite"
    ).resolve()
    assert config.consolidation.default_fiscal_year is None
    assert config.consolidation.equity_method == "full_value"
    assert config.consolidation.parent_equity == "result_share"
    assert config.consolidation.balance_tolerance == 1.0
    assert config.display.mode == "table"
    assert config.display.view == "detailed"
    assert config.logging.file is None


@pytest.mark.parametrize(
    "content, message",
    [
        ('[consolidation]\nequity_method = "net"\n', "Unknown equity method"),
        ('[consolidation]\nparent_equity = "all"\n', "Unknown parent equity"),
        ("[consolidation]\nbalance_tolerance = -1\n", "cannot be negative"),
        ('[consolidation]\nfiscal_year = "soon"\n', "fiscal_year"),
        ('[display]\nmode = "pdf"\n', "Invalid display mode"),
        ('[display]\nview = "complete"\n', "Invalid view level"),
        ('[logging]\nlevel = "loud"\n', "Invalid logging level"),
    ],
)
def test_invalid_values_are_rejected(tmp_path, content, message):
    with pytest.raises(ValueError, match=message):
        load_app_config(str(write_config(tmp_path, content)))


def test_missing_and_unparsable_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "missing.toml"))

    with pytest.raises(ValueError, match="Failed to parse TOML"):
        load_app_config(str(write_config(tmp_path, "[database\n")))


def test_strategy_resolution():
    assert resolve_equity_strategy("full_value") is equity_at_full_value
    assert resolve_equity_strategy("excluded") is equity_excluded
    assert resolve_parent_equity_strategy("result_share") is (
        parent_equity_with_result_shares
    )
    assert resolve_parent_equity_strategy("equity_share") is (
        parent_equity_with_equity_shares
    )
    with pytest.raises(ValueError):
        resolve_equity_strategy("proportional")
    with pytest.raises(ValueError):
        resolve_parent_equity_strategy("nope")
