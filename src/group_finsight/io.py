# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for Group FinSight.

This module reads a company's balance sheet from a CSV file and normalizes
it into a ``{LineItem: amount}`` mapping suitable for storage in the record
store.

Expected input format
---------------------
Column names are case-insensitive:

    line_item, amount

- ``line_item``: balance-sheet line item key (e.g. ``cash_equivalents``).
  ``field`` is accepted as an alias.
- ``amount``: numeric amount. ``value`` is accepted as an alias.

Empty amounts are read as 0. A line item appearing several times is summed
(e.g. a CSV exported with one row per sub-account). Any other column is
ignored.

If the CSV structure does not match, if an amount is not numeric, or if a
line item is unknown, a clear ValueError is raised.
"""

import os
from typing import Optional, Union

import pandas as pd

from .line_items import LineItem

_ITEM_COLUMNS = ("line_item", "field")
_AMOUNT_COLUMNS = ("amount", "value")


def _pick_column(cols: set[str], candidates: tuple[str, ...]) -> Optional[str]:
    for cand in candidates:
        if cand in cols:
            return cand
    return None


def read_balance_sheet_csv(
    path: Union[str, "os.PathLike[str]"],
) -> dict[LineItem, float]:
    """
    Read a balance sheet from a CSV file.

    Parameters
    ----------
    path:
        Path to the CSV file.

    Returns
    -------
    dict[LineItem, float]
        Amount per line item, only for line items present in the file.

    Raises
    ------
    ValueError
        If required columns are missing, amounts are not numeric, or a line
        item is unknown.
    """
    df = pd.read_csv(path)

    # Normalize column names to lowercase (to make the check case-insensitive)
    df.columns = [str(c).lower().strip() for c in df.columns]
    cols = set(df.columns)

    item_col = _pick_column(cols, _ITEM_COLUMNS)
    amount_col = _pick_column(cols, _AMOUNT_COLUMNS)
    if item_col is None or amount_col is None:
        raise ValueError(
            "Invalid balance sheet structure. Expected columns:\n"
            "  - line_item (or field), amount (or value)\n"
            "(column names are case-insensitive)."
        )

    d = df[[item_col, amount_col]].copy()
    d[amount_col] = d[amount_col].fillna(0)
    d[amount_col] = pd.to_numeric(d[amount_col], errors="coerce")
    if d[amount_col].isna().any():
        raise ValueError(f"Invalid numeric values in '{amount_col}' column.")

    values: dict[LineItem, float] = {}
    for _, row in d.iterrows():
        item = LineItem.parse(row[item_col])
        values[item] = values.get(item, 0.0) + float(row[amount_col])

    return values
