# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Document-extraction boundary.

Scanned statements are parsed by an external document-extraction service,
which returns a list of ``(field, value, confidence)`` triples. This module
turns such triples into balance-sheet values:

- ``read_extracted_fields`` loads triples exported as CSV
  (``field, value[, confidence]``),
- ``apply_extracted_fields`` overwrites the matching line items of a
  snapshot and returns a new snapshot.

Each recognized field is applied independently of its confidence: no
threshold is enforced here, reviewing low-confidence values is up to the
caller. Field names that do not match a line item are reported back (and
logged) instead of being applied.
"""

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional, Union

import pandas as pd

from .entities import BalanceSheetSnapshot
from .line_items import LineItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedField:
    """A single value extracted from a scanned statement."""

    field: str
    value: float
    confidence: Optional[float] = None


@dataclass(frozen=True)
class ExtractionOutcome:
    """Snapshot after applying extracted fields, with what was (not) applied."""

    snapshot: BalanceSheetSnapshot
    applied: tuple[LineItem, ...]
    unknown_fields: tuple[str, ...]


def read_extracted_fields(
    path: Union[str, "os.PathLike[str]"],
) -> list[ExtractedField]:
    """Read extracted triples from a CSV file.

    Required columns are ``field`` and ``value``; ``confidence`` is optional.
    Column names are case-insensitive.

    Raises:
        ValueError: if required columns are missing or values are not numeric.
    """
    df = pd.read_csv(path)
    df.columns = [str(c).lower().strip() for c in df.columns]

    if not {"field", "value"}.issubset(df.columns):
        raise ValueError(
            "Invalid extraction file. Expected columns: field, value[, confidence]."
        )

    values = pd.to_numeric(df["value"], errors="coerce")
    if values.isna().any():
        raise ValueError("Invalid numeric values in 'value' column.")

    if "confidence" in df.columns:
        confidences = pd.to_numeric(df["confidence"], errors="coerce")
    else:
        confidences = pd.Series([None] * len(df), index=df.index, dtype="float64")

    fields: list[ExtractedField] = []
    for idx in df.index:
        conf = confidences.loc[idx]
        fields.append(
            ExtractedField(
                field=str(df.loc[idx, "field"]).strip(),
                value=float(values.loc[idx]),
                confidence=None if pd.isna(conf) else float(conf),
            )
        )
    return fields


def apply_extracted_fields(
    snapshot: BalanceSheetSnapshot, fields: Iterable[ExtractedField]
) -> ExtractionOutcome:
    """Overwrite snapshot line items with extracted values.

    When the same field appears more than once, the last value wins.
    """
    updates: dict[LineItem, float] = {}
    unknown: list[str] = []

    for f in fields:
        try:
            item = LineItem.parse(f.field)
        except ValueError:
            unknown.append(f.field)
            continue
        updates[item] = f.value

    if unknown:
        logger.warning(
            "Ignored %d extracted field(s) with no matching line item: %s",
            len(unknown),
            ", ".join(unknown),
        )

    return ExtractionOutcome(
        snapshot=snapshot.with_values(updates),
        applied=tuple(updates),
        unknown_fields=tuple(unknown),
    )
