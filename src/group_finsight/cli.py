# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for Group FinSight.

This module wires together the main building blocks of Group FinSight:

- global configuration (database, consolidation options, display options),
- companies and balance sheets stored in the database,
- consolidation groups (named, reusable perimeters),
- the consolidation engine,
- view helpers (detail levels, tables, CSV and Excel exports).

The CLI is intentionally thin: it does not implement consolidation logic
itself. It orchestrates the underlying modules based on command-line
arguments and the configuration file.


Commands
--------

    init-db
        Create the database file and schema.

    companies add --id ID --name NAME [--bp BP] [--tax-id TAX_ID]
    companies search TERM [--by name|bp|tax_id] [--limit N]

    statements import --company ID --year YEAR CSV_PATH
    statements show --company ID --year YEAR
    statements list [--company ID]
    statements archive --company ID --year YEAR
    statements apply-extraction --company ID --year YEAR CSV_PATH

    groups create --name NAME --year YEAR --member SPEC [--member SPEC ...]
                  [--parent ID] [--notes TEXT]
    groups list
    groups show GROUP_ID

    consolidate (--group GROUP_ID | --year YEAR --member SPEC ...)
                [--parent ID] [--save] [--display-mode MODE] [--view VIEW]
                [--output DIR]

A member SPEC is ``COMPANY_ID[:METHOD[:PERCENTAGE]]``, for example
``ACME``, ``SUB1:full:80`` or ``JV:proportional:50``. METHOD is one of
``full``, ``proportional``, ``equity`` and defaults to ``full``; PERCENTAGE
defaults to 100. When ``--parent`` is omitted, the first member is the
parent.


Configuration
-------------

By default, the CLI reads ``group_finsight_config.toml`` in the current
working directory. Use ``--config PATH`` to point to another file.

Validation errors (an invalid perimeter, an unknown company, a malformed
member spec) stop the command with an explicit message. Data-completeness
problems (a member without balance sheet, an unbalanced result) are
printed as warnings next to the result.
"""

import argparse
from pathlib import Path
from typing import Optional

from . import __version__
from .config import (
    DISPLAY_MODES,
    VIEW_LEVELS,
    AppConfig,
    load_app_config,
    resolve_equity_strategy,
    resolve_parent_equity_strategy,
)
from .db import (
    ConsolidationGroup,
    archive_statement,
    create_group,
    get_balance_sheet,
    get_candidate,
    get_group,
    init_database,
    list_groups,
    list_statements,
    make_snapshot_resolver,
    save_balance_sheet,
    save_consolidated_statement,
    search_companies,
    upsert_company,
)
from .engine import ConsolidationResult, ConsolidationRun
from .entities import BalanceSheetSnapshot, Company
from .errors import ConsolidationError
from .extraction import apply_extracted_fields, read_extracted_fields
from .io import read_balance_sheet_csv
from .logging_config import configure_logging
from .perimeter import ConsolidationMethod, Perimeter, PerimeterBuilder
from .views import (
    apply_view_level_filter,
    balance_sheet_to_dataframe,
    membership_to_dataframe,
    write_csv_reports,
    write_excel_report,
)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="group-finsight",
        description=(
            "Group FinSight - Multi-entity consolidation engine for SMB groups. "
            "Stores companies and their balance sheets, builds consolidation "
            "perimeters and computes consolidated balance sheets."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of group_finsight and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. If omitted, "
            "'group_finsight_config.toml' in the current directory is used."
        ),
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # ------------------------------------------------------------------
    # init-db
    # ------------------------------------------------------------------
    subparsers.add_parser("init-db", help="Create the database and its schema.")

    # ------------------------------------------------------------------
    # companies
    # ------------------------------------------------------------------
    companies_parser = subparsers.add_parser(
        "companies", help="Manage the companies reference data."
    )
    companies_sub = companies_parser.add_subparsers(
        dest="companies_command", metavar="companies-command"
    )

    companies_add = companies_sub.add_parser("add", help="Add or update a company.")
    companies_add.add_argument("--id", dest="company_id", required=True)
    companies_add.add_argument("--name", required=True)
    companies_add.add_argument("--bp", help="Business-partner code.")
    companies_add.add_argument("--tax-id", dest="tax_id", help="Tax identifier.")

    companies_search = companies_sub.add_parser(
        "search", help="Search companies (at least 2 characters)."
    )
    companies_search.add_argument("term")
    companies_search.add_argument(
        "--by",
        dest="search_by",
        choices=["name", "bp", "tax_id"],
        default="name",
        help="Field to search in (default: name).",
    )
    companies_search.add_argument("--limit", type=int, default=20)

    # ------------------------------------------------------------------
    # statements
    # ------------------------------------------------------------------
    statements_parser = subparsers.add_parser(
        "statements", help="Manage company balance sheets."
    )
    statements_sub = statements_parser.add_subparsers(
        dest="statements_command", metavar="statements-command"
    )

    def _company_year(p: argparse.ArgumentParser) -> None:
        p.add_argument("--company", dest="company_id", required=True)
        p.add_argument("--year", dest="fiscal_year", type=int, required=True)

    st_import = statements_sub.add_parser(
        "import", help="Import a balance sheet from a CSV file (line_item, amount)."
    )
    _company_year(st_import)
    st_import.add_argument("csv_path", metavar="CSV_PATH")

    st_show = statements_sub.add_parser("show", help="Show an active balance sheet.")
    _company_year(st_show)

    st_list = statements_sub.add_parser("list", help="List stored statements.")
    st_list.add_argument("--company", dest="company_id")

    st_archive = statements_sub.add_parser(
        "archive", help="Archive the active balance sheet of a company."
    )
    _company_year(st_archive)

    st_extract = statements_sub.add_parser(
        "apply-extraction",
        help="Apply fields extracted from a scanned statement (field, value[, confidence]).",
    )
    _company_year(st_extract)
    st_extract.add_argument("csv_path", metavar="CSV_PATH")

    # ------------------------------------------------------------------
    # groups
    # ------------------------------------------------------------------
    groups_parser = subparsers.add_parser(
        "groups", help="Manage consolidation groups (saved perimeters)."
    )
    groups_sub = groups_parser.add_subparsers(
        dest="groups_command", metavar="groups-command"
    )

    groups_create = groups_sub.add_parser("create", help="Save a new perimeter.")
    groups_create.add_argument("--name", required=True)
    groups_create.add_argument("--year", dest="fiscal_year", type=int)
    _member_arguments(groups_create)
    groups_create.add_argument("--notes")

    groups_sub.add_parser("list", help="List consolidation groups.")

    groups_show = groups_sub.add_parser("show", help="Show a consolidation group.")
    groups_show.add_argument("group_id", type=int)

    # ------------------------------------------------------------------
    # consolidate
    # ------------------------------------------------------------------
    consolidate = subparsers.add_parser(
        "consolidate", help="Compute a consolidated balance sheet."
    )
    consolidate.add_argument(
        "--group",
        dest="group_id",
        type=int,
        help="Consolidate a saved group instead of an ad-hoc perimeter.",
    )
    consolidate.add_argument("--year", dest="fiscal_year", type=int)
    _member_arguments(consolidate)
    consolidate.add_argument(
        "--save",
        action="store_true",
        help="Store the consolidated balance sheet (requires --group).",
    )
    consolidate.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=list(DISPLAY_MODES),
        help=(
            "Override the display.mode setting from the configuration file. "
            "'table' prints results to stdout, 'csv' and 'xlsx' write files "
            "only, 'both' prints and writes CSV files."
        ),
    )
    consolidate.add_argument(
        "--view",
        choices=list(VIEW_LEVELS),
        help=(
            "Level of detail of the consolidated statement. "
            "simplified: levels 0-1; regular: levels 0-2; detailed: all."
        ),
    )
    consolidate.add_argument(
        "--output",
        dest="output_dir",
        help="Output directory for CSV/Excel files (default from config).",
    )

    return ap


def _member_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--member",
        dest="members",
        action="append",
        default=[],
        metavar="SPEC",
        help="Perimeter member as COMPANY_ID[:METHOD[:PERCENTAGE]]. Repeatable.",
    )
    p.add_argument(
        "--parent",
        dest="parent_id",
        help="Parent company id (default: the first member).",
    )


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def parse_member_spec(spec: str) -> tuple[str, ConsolidationMethod, float]:
    """
    Parse a ``COMPANY_ID[:METHOD[:PERCENTAGE]]`` member spec.

    Raises
    ------
    SystemExit
        If the member spec is malformed.
    """
    parts = [p.strip() for p in spec.split(":")]
    if not parts[0] or len(parts) > 3:
        raise SystemExit(
            f"Invalid member spec: {spec!r}. Expected COMPANY_ID[:METHOD[:PERCENTAGE]]."
        )

    company_id = parts[0]
    try:
        method = ConsolidationMethod.parse(parts[1]) if len(parts) > 1 else (
            ConsolidationMethod.FULL
        )
    except ValueError as exc:
        raise SystemExit(f"Invalid member spec {spec!r}: {exc}") from exc

    try:
        percentage = float(parts[2]) if len(parts) > 2 else 100.0
    except ValueError as exc:
        raise SystemExit(
            f"Invalid participation percentage in member spec {spec!r}."
        ) from exc

    return company_id, method, percentage


def _require_year(args: argparse.Namespace, config: AppConfig) -> int:
    year = getattr(args, "fiscal_year", None)
    if year is None:
        year = config.consolidation.default_fiscal_year
    if year is None:
        raise SystemExit(
            "No fiscal year given. Use --year or set consolidation.fiscal_year "
            "in the configuration."
        )
    return int(year)


def build_perimeter(
    config: AppConfig,
    fiscal_year: int,
    member_specs: list[str],
    parent_id: Optional[str] = None,
) -> Perimeter:
    """
    Build and validate a perimeter from member specs.

    Raises
    ------
    SystemExit
        If a company is unknown.
    ConsolidationError
        If the perimeter is invalid.
    """
    builder = PerimeterBuilder(fiscal_year)
    for spec in member_specs:
        company_id, method, percentage = parse_member_spec(spec)
        candidate = get_candidate(config.database, company_id)
        if candidate is None:
            raise SystemExit(f"Unknown company: {company_id!r}")
        builder.add_member(candidate)
        builder.set_method(company_id, method)
        builder.set_participation(company_id, percentage)

    if parent_id:
        if parent_id not in builder.perimeter:
            raise SystemExit(f"Parent {parent_id!r} is not a member of the perimeter.")
        builder.set_parent(parent_id)

    return builder.validate()


def _print_table(title: str, df) -> None:
    print()
    print(f"=== {title} ===")
    if df.empty:
        print("(empty)")
    else:
        print(df.to_string(index=False))


def _print_snapshot(snapshot: BalanceSheetSnapshot, decimals: int) -> None:
    print(f"Company {snapshot.company_id} - fiscal year {snapshot.fiscal_year}")
    for item, amount in snapshot.values.items():
        print(f"  {item.label:<45} {amount:>18,.{decimals}f}")


# ----------------------------------------------------------------------
# Command handlers
# ----------------------------------------------------------------------


def _handle_companies_command(args: argparse.Namespace, config: AppConfig) -> None:
    subcmd = getattr(args, "companies_command", None)

    if subcmd == "add":
        company = upsert_company(
            config.database,
            Company(
                id=args.company_id, name=args.name, bp=args.bp, tax_id=args.tax_id
            ),
        )
        print(f"Company saved: {company.id} ({company.name})")
    elif subcmd == "search":
        candidates = search_companies(
            config.database, args.term, search_by=args.search_by, limit=args.limit
        )
        if not candidates:
            print("No companies found (the search term needs at least 2 characters).")
            return
        for c in candidates:
            years = ", ".join(str(y) for y in c.fiscal_years) or "no statements"
            print(
                f"{c.company.id:<12} {c.company.name:<35} "
                f"bp={c.company.bp or '-':<10} tax_id={c.company.tax_id or '-':<14} "
                f"years: {years}"
            )
    else:
        print("No companies subcommand specified. Available: 'add', 'search'.")


def _handle_statements_command(args: argparse.Namespace, config: AppConfig) -> None:
    subcmd = getattr(args, "statements_command", None)
    decimals = config.display.amount_decimals

    if subcmd == "import":
        csv_path = Path(args.csv_path)
        if not csv_path.is_file():
            raise SystemExit(f"CSV file not found: {csv_path}")
        try:
            values = read_balance_sheet_csv(csv_path)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        snapshot = BalanceSheetSnapshot.from_mapping(
            args.company_id, args.fiscal_year, values
        )
        try:
            statement_id = save_balance_sheet(config.database, snapshot, source="csv")
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        print(
            f"Imported statement #{statement_id} for {args.company_id} / "
            f"{args.fiscal_year}: {len(values)} line item(s)."
        )

    elif subcmd == "show":
        snapshot = get_balance_sheet(config.database, args.company_id, args.fiscal_year)
        if snapshot is None:
            print(
                f"No active balance sheet for {args.company_id} in {args.fiscal_year}."
            )
            return
        _print_snapshot(snapshot, decimals)

    elif subcmd == "list":
        df = list_statements(config.database, args.company_id)
        _print_table("Statements", df)

    elif subcmd == "archive":
        if archive_statement(config.database, args.company_id, args.fiscal_year):
            print(f"Archived statement of {args.company_id} / {args.fiscal_year}.")
        else:
            print(
                f"No active balance sheet for {args.company_id} in {args.fiscal_year}."
            )

    elif subcmd == "apply-extraction":
        try:
            fields = read_extracted_fields(args.csv_path)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        snapshot = get_balance_sheet(config.database, args.company_id, args.fiscal_year)
        if snapshot is None:
            snapshot = BalanceSheetSnapshot(args.company_id, args.fiscal_year)
        outcome = apply_extracted_fields(snapshot, fields)
        try:
            statement_id = save_balance_sheet(
                config.database, outcome.snapshot, source="ocr"
            )
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        print(
            f"Applied {len(outcome.applied)} extracted field(s) to statement "
            f"#{statement_id}."
        )
        if outcome.unknown_fields:
            print(f"Ignored unknown fields: {', '.join(outcome.unknown_fields)}")

    else:
        print(
            "No statements subcommand specified. Available: 'import', 'show', "
            "'list', 'archive', 'apply-extraction'."
        )


def _print_group(group: ConsolidationGroup) -> None:
    print(f"Group #{group.id}: {group.name}")
    print(f"  fiscal year: {group.fiscal_year}")
    print(f"  status:      {group.status}")
    print(f"  updated at:  {group.updated_at}")
    if group.notes:
        print(f"  notes:       {group.notes}")
    rows = [
        (
            m.company_id,
            m.company.name,
            "parent" if m.is_parent else "subsidiary",
            m.consolidation_method.value,
            m.participation_percentage,
        )
        for m in group.perimeter
    ]
    for company_id, name, role, method, pct in rows:
        print(f"  - {company_id:<12} {name:<30} {role:<10} {method:<12} {pct:>6.2f} %")


def _handle_groups_command(args: argparse.Namespace, config: AppConfig) -> None:
    subcmd = getattr(args, "groups_command", None)

    if subcmd == "create":
        if not args.members:
            raise SystemExit("At least one --member is required.")
        fiscal_year = _require_year(args, config)
        perimeter = build_perimeter(config, fiscal_year, args.members, args.parent_id)
        group = create_group(config.database, args.name, perimeter, notes=args.notes)
        print(f"Created consolidation group #{group.id} ({len(perimeter)} companies).")
    elif subcmd == "list":
        _print_table("Consolidation groups", list_groups(config.database))
    elif subcmd == "show":
        group = get_group(config.database, args.group_id)
        if group is None:
            raise SystemExit(f"Consolidation group with id {args.group_id} not found.")
        _print_group(group)
    else:
        print("No groups subcommand specified. Available: 'create', 'list', 'show'.")


def _render_result(
    result: ConsolidationResult,
    display_mode: str,
    view: str,
    output_dir: Path,
    decimals: int,
) -> None:
    if display_mode in {"table", "both"}:
        _print_table("Perimeter", membership_to_dataframe(result.membership))

        statement = apply_view_level_filter(
            balance_sheet_to_dataframe(result.balance_sheet), view
        )
        statement = statement.assign(amount=statement["amount"].round(decimals))
        _print_table(f"Consolidated balance sheet - FY {result.fiscal_year}", statement)

        print()
        check = result.balance_check
        status = "balanced" if check.balanced else "NOT balanced"
        print(f"Balance check: {status} (difference {check.difference:.{decimals}f})")

    for warning in result.warnings:
        print(f"Warning: {warning.message}")

    if display_mode in {"csv", "both"}:
        for path in write_csv_reports(result, output_dir, view=view, decimals=decimals):
            print(f"Wrote {path}")

    if display_mode == "xlsx":
        path = write_excel_report(
            result,
            output_dir / f"consolidated_{result.fiscal_year}.xlsx",
            view=view,
            decimals=decimals,
        )
        print(f"Wrote {path}")


def _handle_consolidate_command(args: argparse.Namespace, config: AppConfig) -> None:
    if args.group_id is not None and args.members:
        raise SystemExit("Use either --group or --member, not both.")
    if args.save and args.group_id is None:
        raise SystemExit("--save requires --group.")

    if args.group_id is not None:
        group = get_group(config.database, args.group_id)
        if group is None:
            raise SystemExit(f"Consolidation group with id {args.group_id} not found.")
        perimeter = group.perimeter
    else:
        if not args.members:
            raise SystemExit("Nothing to consolidate: give --group or --member.")
        fiscal_year = _require_year(args, config)
        perimeter = build_perimeter(config, fiscal_year, args.members, args.parent_id)

    options = config.consolidation
    run = ConsolidationRun(
        perimeter,
        equity_strategy=resolve_equity_strategy(options.equity_method),
        parent_equity_strategy=resolve_parent_equity_strategy(options.parent_equity),
        balance_tolerance=options.balance_tolerance,
    )
    run.validate()
    result = run.compute(make_snapshot_resolver(config.database))

    display = config.display
    output_dir = Path(args.output_dir) if args.output_dir else display.output_dir
    if output_dir is None:
        output_dir = Path("data/output")
    _render_result(
        result,
        display_mode=args.display_mode or display.mode,
        view=args.view or display.view,
        output_dir=output_dir,
        decimals=display.amount_decimals,
    )

    if args.save:
        record_id = save_consolidated_statement(config.database, args.group_id, result)
        run.mark_persisted(record_id)
        print(f"Saved consolidated statement #{record_id} for group #{args.group_id}.")


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the Group FinSight CLI.

    Parses command-line arguments, loads the configuration, configures
    logging, initializes the database and dispatches to the requested
    command. Consolidation errors are turned into a clean exit message.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"group_finsight version {__version__}")
        return

    if args.command is None:
        parser.print_help()
        return

    if args.config_path:
        config = load_app_config(args.config_path)
    else:
        config = load_app_config()

    configure_logging(config.logging)
    init_database(config.database)

    try:
        if args.command == "init-db":
            print(f"Database ready: {config.database.path}")
        elif args.command == "companies":
            _handle_companies_command(args, config)
        elif args.command == "statements":
            _handle_statements_command(args, config)
        elif args.command == "groups":
            _handle_groups_command(args, config)
        elif args.command == "consolidate":
            _handle_consolidate_command(args, config)
    except ConsolidationError as exc:
        raise SystemExit(f"Error: {exc}") from exc


if __name__ == "__main__":
    main()
