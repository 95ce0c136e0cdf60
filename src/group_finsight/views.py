# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for Group FinSight.

This module turns a consolidation result into pandas DataFrames and writes
them to CSV or Excel. The consolidated balance sheet is laid out in the
long format used for every statement in the application:

    display_order, id, level, name, type, amount

Levels:

- 0: grand totals (total assets, total equity and liabilities),
- 1: sections (non-current/current assets, equity, non-current/current
     liabilities),
- 2: equity components (parent equity, minority interests), the
     consolidation goodwill slot and the eliminated group investments,
- 3: aggregated line items.

Row types:

- "calc": computed total or subtotal,
- "item": aggregated line item, part of its section total,
- "memo": shown for information only. Consolidated equity is not the sum
  of the aggregated equity line items, so these are memo rows; so is the
  eliminated amount of investments in group companies.

The main views are:

- simplified: levels 0-1,
- regular:    levels 0-2,
- detailed:   all levels.

Rounding is only applied here, at presentation time.
"""

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Union

import pandas as pd

from .engine import ConsolidationResult
from .entities import BalanceSheetSnapshot
from .line_items import (
    CURRENT_ASSET_ITEMS,
    CURRENT_LIABILITY_ITEMS,
    EQUITY_ITEMS,
    NON_CURRENT_ASSET_ITEMS,
    NON_CURRENT_LIABILITY_ITEMS,
    LineItem,
)
from .statement import ConsolidatedBalanceSheet, MembershipRow

STATEMENT_COLUMNS = ["display_order", "id", "level", "name", "type", "amount"]

SHEET_BALANCE = "Consolidated balance"
SHEET_DETAILS = "Company details"
SHEET_PERIMETER = "Perimeter"


def balance_sheet_to_dataframe(sheet: ConsolidatedBalanceSheet) -> pd.DataFrame:
    """
    Lay out a consolidated balance sheet as a long-format statement.

    Returns
    -------
    pandas.DataFrame
        Columns: display_order, id, level, name, type, amount. Rows are in
        presentation order (assets, then equity and liabilities).
    """
    rows: list[tuple[str, int, str, str, float]] = []

    def add(id_: str, level: int, name: str, type_: str, amount: float) -> None:
        rows.append((id_, level, name, type_, float(amount)))

    def add_items(items: Iterable[LineItem], type_: str = "item") -> None:
        for item in items:
            add(item.value, 3, item.label, type_, sheet.details[item])

    # Assets
    add("total_assets", 0, "Total assets", "calc", sheet.total_assets)
    add(
        "non_current_assets", 1, "Non-current assets", "calc",
        sheet.non_current_assets,
    )
    add(
        "consolidation_goodwill", 2, "Consolidation goodwill", "calc",
        sheet.consolidation_goodwill,
    )
    add(
        "eliminated_group_investments", 2,
        "Investments in group companies (eliminated)", "memo",
        sheet.eliminated_group_investments,
    )
    add_items(NON_CURRENT_ASSET_ITEMS)
    add("current_assets", 1, "Current assets", "calc", sheet.current_assets)
    add_items(CURRENT_ASSET_ITEMS)

    # Equity and liabilities
    add(
        "total_equity_and_liabilities", 0, "Total equity and liabilities", "calc",
        sheet.total_equity_and_liabilities,
    )
    add("total_equity", 1, "Equity", "calc", sheet.total_equity)
    add(
        "equity_parent", 2, "Equity attributable to the parent", "calc",
        sheet.equity_parent,
    )
    add(
        "minority_interests", 2, "Minority interests", "calc",
        sheet.minority_interests,
    )
    add_items(EQUITY_ITEMS, type_="memo")
    add(
        "non_current_liabilities", 1, "Non-current liabilities", "calc",
        sheet.non_current_liabilities,
    )
    add_items(NON_CURRENT_LIABILITY_ITEMS)
    add(
        "current_liabilities", 1, "Current liabilities", "calc",
        sheet.current_liabilities,
    )
    add_items(CURRENT_LIABILITY_ITEMS)

    df = pd.DataFrame(rows, columns=["id", "level", "name", "type", "amount"])
    df.insert(0, "display_order", (df.index + 1) * 10)
    return df


def apply_view_level_filter(out: pd.DataFrame, view: str) -> pd.DataFrame:
    """Return a view-specific slice with harmonized display_order and columns.

    - "simplified": keep rows with level <= 1,
    - "regular":    keep rows with level <= 2,
    - any other value (e.g. "detailed"): keep all rows.

    Rows keep their relative order; display_order is renumbered to
    10, 20, 30, ... and columns are reordered for export.
    """
    if view == "simplified":
        df = out[out["level"] <= 1].copy()
    elif view == "regular":
        df = out[out["level"] <= 2].copy()
    else:
        df = out.copy()

    if "display_order" in df.columns:
        df = df.sort_values("display_order", ascending=True, kind="stable")
    df = df.reset_index(drop=True)
    df["display_order"] = (df.index + 1) * 10

    return df[[c for c in STATEMENT_COLUMNS if c in df.columns]]


def membership_to_dataframe(rows: Iterable[MembershipRow]) -> pd.DataFrame:
    """Perimeter table: one row per member, parent first as in the perimeter."""
    columns = [
        "company_id",
        "company_name",
        "bp",
        "tax_id",
        "role",
        "participation_percentage",
        "method",
    ]
    return pd.DataFrame(
        [
            (
                r.company_id,
                r.company_name,
                r.bp,
                r.tax_id,
                r.role,
                r.participation_percentage,
                r.method,
            )
            for r in rows
        ],
        columns=columns,
    )


def company_details_to_dataframe(
    snapshots: Mapping[str, BalanceSheetSnapshot],
    membership: Iterable[MembershipRow],
) -> pd.DataFrame:
    """
    Raw (unweighted) figures of each member, one row per company.

    Members without a balance sheet get zeros and ``has_statement`` False.
    """
    records: list[dict[str, object]] = []
    for row in membership:
        snapshot = snapshots.get(row.company_id)
        record: dict[str, object] = {
            "company_id": row.company_id,
            "company_name": row.company_name,
            "role": row.role,
            "method": row.method,
            "participation_percentage": row.participation_percentage,
            "has_statement": snapshot is not None,
        }
        for item in LineItem:
            record[item.value] = 0.0 if snapshot is None else snapshot.value(item)
        records.append(record)

    columns = [
        "company_id",
        "company_name",
        "role",
        "method",
        "participation_percentage",
        "has_statement",
    ] + [item.value for item in LineItem]
    return pd.DataFrame(records, columns=columns)


def _round_amounts(df: pd.DataFrame, decimals: int, columns: Iterable[str]) -> pd.DataFrame:
    df = df.copy()
    for col in columns:
        if col in df.columns:
            df[col] = df[col].astype(float).round(decimals)
    return df


def result_to_dataframes(
    result: ConsolidationResult, view: str = "detailed", decimals: int = 2
) -> dict[str, pd.DataFrame]:
    """Build the three report tables, keyed by sheet name."""
    statement = apply_view_level_filter(
        balance_sheet_to_dataframe(result.balance_sheet), view
    )
    details = company_details_to_dataframe(result.snapshots, result.membership)
    return {
        SHEET_BALANCE: _round_amounts(statement, decimals, ["amount"]),
        SHEET_DETAILS: _round_amounts(
            details, decimals, [item.value for item in LineItem]
        ),
        SHEET_PERIMETER: membership_to_dataframe(result.membership),
    }


def write_csv_reports(
    result: ConsolidationResult,
    output_dir: Union[str, Path],
    view: str = "detailed",
    decimals: int = 2,
) -> list[Path]:
    """
    Write the consolidated statement, company details and perimeter as CSV.

    Files are named ``consolidated_balance_<year>.csv``,
    ``company_details_<year>.csv`` and ``perimeter_<year>.csv``.
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    frames = result_to_dataframes(result, view=view, decimals=decimals)
    names = {
        SHEET_BALANCE: "consolidated_balance",
        SHEET_DETAILS: "company_details",
        SHEET_PERIMETER: "perimeter",
    }

    written: list[Path] = []
    for sheet_name, df in frames.items():
        path = out_dir / f"{names[sheet_name]}_{result.fiscal_year}.csv"
        df.to_csv(path, index=False)
        written.append(path)
    return written


def write_excel_report(
    result: ConsolidationResult,
    path: Union[str, Path],
    view: str = "detailed",
    decimals: int = 2,
) -> Path:
    """Write the report tables to a single workbook, one sheet per table."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    frames = result_to_dataframes(result, view=view, decimals=decimals)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, df in frames.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)

            # Fit column widths to their content
            worksheet = writer.sheets[sheet_name]
            for column_cells in worksheet.iter_cols():
                width = max(
                    len(str(cell.value)) if cell.value is not None else 0
                    for cell in column_cells
                )
                worksheet.column_dimensions[column_cells[0].column_letter].width = (
                    width + 2
                )

    return path
