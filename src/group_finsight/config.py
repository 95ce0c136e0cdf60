# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for Group FinSight.

This module is responsible for:
- loading the main application configuration from a TOML file,
- validating the consolidation options (strategy names, tolerance),
- exposing typed dataclasses used by the rest of the application.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .aggregation import EQUITY_METHOD_STRATEGIES, EquityMethodStrategy
from .db import DatabaseConfig
from .parent_equity import PARENT_EQUITY_STRATEGIES, ParentEquityStrategy
from .statement import DEFAULT_BALANCE_TOLERANCE

DEFAULT_CONFIG_FILE = "group_finsight_config.toml"

DISPLAY_MODES = ("table", "csv", "xlsx", "both")
VIEW_LEVELS = ("simplified", "regular", "detailed")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ConsolidationOptions:
    """
    Options applied to every consolidation run.

    Attributes
    ----------
    default_fiscal_year:
        Fiscal year used by CLI commands when ``--year`` is omitted.
    equity_method:
        Name of the equity-method strategy ("full_value" or "excluded").
    parent_equity:
        Name of the parent-equity strategy ("result_share" or "equity_share").
    balance_tolerance:
        Maximum absolute difference accepted between total assets and
        total equity plus liabilities.
    """

    default_fiscal_year: Optional[int] = None
    equity_method: str = "full_value"
    parent_equity: str = "result_share"
    balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE


@dataclass(frozen=True)
class DisplayOptions:
    mode: str = "table"
    view: str = "detailed"
    output_dir: Optional[Path] = None
    amount_decimals: int = 2


@dataclass(frozen=True)
class LoggingOptions:
    level: str = "INFO"
    file: Optional[Path] = None


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for Group FinSight.

    This aggregates:
    - the database configuration (where companies, statements and groups
      are stored),
    - the consolidation options,
    - display options for tables and exports,
    - logging options.
    """

    database: DatabaseConfig
    consolidation: ConsolidationOptions
    display: DisplayOptions
    logging: LoggingOptions


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        return {}
    return section


def _parse_consolidation(section: Mapping[str, Any]) -> ConsolidationOptions:
    """
    Extract and validate the [consolidation] table.

    Raises:
        ValueError: if a strategy name is unknown or a number is invalid.
    """
    raw_year = section.get("fiscal_year")
    try:
        fiscal_year = None if raw_year in (None, "") else int(raw_year)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'consolidation.fiscal_year'. Expected an integer."
        ) from exc

    equity_method = str(section.get("equity_method", "full_value"))
    if equity_method not in EQUITY_METHOD_STRATEGIES:
        raise ValueError(
            f"Unknown equity method strategy: {equity_method!r}. "
            f"Expected one of: {', '.join(EQUITY_METHOD_STRATEGIES)}."
        )

    parent_equity = str(section.get("parent_equity", "result_share"))
    if parent_equity not in PARENT_EQUITY_STRATEGIES:
        raise ValueError(
            f"Unknown parent equity strategy: {parent_equity!r}. "
            f"Expected one of: {', '.join(PARENT_EQUITY_STRATEGIES)}."
        )

    try:
        tolerance = float(section.get("balance_tolerance", DEFAULT_BALANCE_TOLERANCE))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'consolidation.balance_tolerance'. Expected a number."
        ) from exc
    if tolerance < 0:
        raise ValueError("'consolidation.balance_tolerance' cannot be negative.")

    return ConsolidationOptions(
        default_fiscal_year=fiscal_year,
        equity_method=equity_method,
        parent_equity=parent_equity,
        balance_tolerance=tolerance,
    )


def _parse_display(section: Mapping[str, Any], base_dir: Path) -> DisplayOptions:
    mode = str(section.get("mode", "table"))
    if mode not in DISPLAY_MODES:
        raise ValueError(
            f"Invalid display mode: {mode!r}. Expected one of: {', '.join(DISPLAY_MODES)}."
        )

    view = str(section.get("view", "detailed"))
    if view not in VIEW_LEVELS:
        raise ValueError(
            f"Invalid view level: {view!r}. Expected one of: {', '.join(VIEW_LEVELS)}."
        )

    output_dir_raw = section.get("output_dir") or "data/output"
    output_dir = (base_dir / str(output_dir_raw)).resolve()

    try:
        amount_decimals = int(section.get("amount_decimals", 2))
    except (TypeError, ValueError):
        amount_decimals = 2

    return DisplayOptions(
        mode=mode,
        view=view,
        output_dir=output_dir,
        amount_decimals=amount_decimals,
    )


def _parse_logging(section: Mapping[str, Any], base_dir: Path) -> LoggingOptions:
    level = str(section.get("level") or "INFO").strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid logging level: {level!r}. Expected one of: "
            + ", ".join(LOG_LEVELS)
            + "."
        )
    file_raw = section.get("file") or None
    log_file = None if file_raw is None else (base_dir / str(file_raw)).resolve()
    return LoggingOptions(level=level, file=log_file)


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the Group FinSight application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [database]
        Defines the database engine and the SQLite file path.

    [consolidation]
        Default fiscal year, equity-method and parent-equity strategies,
        and the tolerance of the balance check.

    [display]
        Output mode (table, csv, xlsx, both), default view level, export
        directory and number of decimals shown.

    [logging]
        Log level and optional log file.

    Notes
    -----
    - Every section is optional; missing keys fall back to defaults.
    - All file paths in the TOML are resolved relative to the directory of
      the TOML file itself.

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML configuration file. Defaults to
        ``group_finsight_config.toml`` in the working directory.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or "data/db/group_finsight.sqlite"
    db_path = (base_dir / str(db_path_raw)).resolve()

    # 2) Consolidation, display and logging options
    consolidation = _parse_consolidation(_section(raw, "consolidation"))
    display = _parse_display(_section(raw, "display"), base_dir)
    logging_options = _parse_logging(_section(raw, "logging"), base_dir)

    return AppConfig(
        database=DatabaseConfig(engine=db_engine, path=db_path),
        consolidation=consolidation,
        display=display,
        logging=logging_options,
    )


def resolve_equity_strategy(name: str) -> EquityMethodStrategy:
    """Return the equity-method strategy registered under ``name``."""
    try:
        return EQUITY_METHOD_STRATEGIES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown equity method strategy: {name!r}") from exc


def resolve_parent_equity_strategy(name: str) -> ParentEquityStrategy:
    """Return the parent-equity strategy registered under ``name``."""
    try:
        return PARENT_EQUITY_STRATEGIES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown parent equity strategy: {name!r}") from exc
