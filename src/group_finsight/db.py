# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for Group FinSight.

This module is the record store consumed by the consolidation engine. It
provides all low-level accessors for the SQLite database used by the
application. It is responsible for:

- Initializing the database schema.
- Storing companies (reference data) and searching them.
- Storing one balance sheet per (company, fiscal year), with archiving.
- Resolving balance-sheet snapshots for the engine.
- Persisting consolidation groups (named, reusable perimeters).
- Persisting consolidated balance sheets produced by the engine.

The engine itself never talks to the database: callers fetch what the
engine needs (``make_snapshot_resolver``) and store what it produces
(``save_consolidated_statement``).

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) companies
   - id          TEXT PRIMARY KEY
   - name        TEXT NOT NULL
   - bp          TEXT              -- business-partner code
   - tax_id      TEXT
   - created_at  TEXT NOT NULL     -- ISO datetime, UTC
   - updated_at  TEXT

2) financial_statements
   One row per balance sheet. At most one *active* (non-archived) statement
   exists per (company_id, fiscal_year); archived statements are kept for
   reference and never modified again.

   - id           INTEGER PRIMARY KEY AUTOINCREMENT
   - company_id   TEXT    NOT NULL  -- foreign key to companies.id
   - fiscal_year  INTEGER NOT NULL
   - source       TEXT    NOT NULL  -- "manual" | "csv" | "ocr"
   - is_archived  INTEGER NOT NULL DEFAULT 0
   - created_at   TEXT    NOT NULL
   - updated_at   TEXT
   - archived_at  TEXT

3) balance_sheet_lines
   - statement_id  INTEGER NOT NULL  -- foreign key to financial_statements.id
   - line_item     TEXT    NOT NULL  -- LineItem value
   - amount_cents  INTEGER NOT NULL

4) consolidation_groups / consolidation_group_members
   A named perimeter with metadata. Members keep their perimeter order in
   the ``position`` column.

5) consolidated_statements / consolidated_statement_lines
   Immutable consolidated balance sheets, linked to their group and fiscal
   year. Lines are stored in two sections: 'summary' (totals, subtotals,
   parent equity, minority interests, ...) and 'detail' (one row per
   LineItem).

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- All amounts are stored as signed integer cents.
- All timestamps are stored as ISO-8601 text (UTC).
- Foreign key enforcement is explicitly enabled.
- ``init_database`` is idempotent and is called by every public accessor.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal

import pandas as pd

from .engine import ConsolidationResult
from .entities import BalanceSheetSnapshot, Company, CompanyCandidate
from .errors import StaleGroupError
from .line_items import LineItem
from .perimeter import ConsolidationMember, Perimeter
from .statement import ConsolidatedBalanceSheet

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for Group FinSight.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


StatementSource = Literal["manual", "csv", "ocr"]
"""
Origin of a balance sheet.

Values
------
- "manual": typed in by an operator.
- "csv"   : imported from a CSV file.
- "ocr"   : extracted from a scanned statement.
"""

SearchField = Literal["name", "bp", "tax_id"]

GroupStatus = Literal["draft", "computed"]


@dataclass(frozen=True)
class ConsolidationGroup:
    """A persisted, reusable perimeter with its metadata."""

    id: int
    name: str
    perimeter: Perimeter
    notes: str | None
    status: str
    created_at: datetime
    updated_at: datetime

    @property
    def fiscal_year(self) -> int:
        return self.perimeter.fiscal_year


# Summary fields of ConsolidatedBalanceSheet, in storage order.
_SUMMARY_FIELDS: tuple[str, ...] = (
    "total_assets",
    "total_equity",
    "total_liabilities",
    "non_current_assets",
    "current_assets",
    "non_current_liabilities",
    "current_liabilities",
    "equity_parent",
    "minority_interests",
    "consolidation_goodwill",
    "eliminated_group_investments",
)

MIN_SEARCH_LENGTH = 2
DEFAULT_SEARCH_LIMIT = 20


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS companies (
            id          TEXT PRIMARY KEY,
            name        TEXT NOT NULL,
            bp          TEXT,
            tax_id      TEXT,
            created_at  TEXT NOT NULL,
            updated_at  TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS financial_statements (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id   TEXT    NOT NULL,
            fiscal_year  INTEGER NOT NULL,
            source       TEXT    NOT NULL DEFAULT 'manual',
            is_archived  INTEGER NOT NULL DEFAULT 0,
            created_at   TEXT    NOT NULL,
            updated_at   TEXT,
            archived_at  TEXT,

            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS balance_sheet_lines (
            statement_id  INTEGER NOT NULL,
            line_item     TEXT    NOT NULL,
            amount_cents  INTEGER NOT NULL,

            PRIMARY KEY (statement_id, line_item),
            FOREIGN KEY (statement_id) REFERENCES financial_statements(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS consolidation_groups (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            group_name         TEXT    NOT NULL,
            fiscal_year        INTEGER NOT NULL,
            parent_company_id  TEXT,
            notes              TEXT,
            status             TEXT    NOT NULL DEFAULT 'draft',
            created_at         TEXT    NOT NULL,
            updated_at         TEXT    NOT NULL,

            FOREIGN KEY (parent_company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS consolidation_group_members (
            group_id                 INTEGER NOT NULL,
            position                 INTEGER NOT NULL,
            company_id               TEXT    NOT NULL,
            participation_percentage REAL    NOT NULL DEFAULT 100,
            consolidation_method     TEXT    NOT NULL DEFAULT 'full',
            is_parent                INTEGER NOT NULL DEFAULT 0,

            PRIMARY KEY (group_id, company_id),
            FOREIGN KEY (group_id) REFERENCES consolidation_groups(id),
            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS consolidated_statements (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            group_id          INTEGER NOT NULL,
            fiscal_year       INTEGER NOT NULL,
            created_at        TEXT    NOT NULL,
            balanced          INTEGER NOT NULL,
            difference_cents  INTEGER NOT NULL,

            FOREIGN KEY (group_id) REFERENCES consolidation_groups(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS consolidated_statement_lines (
            statement_id  INTEGER NOT NULL,
            section       TEXT    NOT NULL,  -- 'summary' | 'detail'
            key           TEXT    NOT NULL,
            amount_cents  INTEGER NOT NULL,

            PRIMARY KEY (statement_id, section, key),
            FOREIGN KEY (statement_id) REFERENCES consolidated_statements(id)
        );
        """
    )

    # Indexes
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_statements_active
            ON financial_statements(company_id, fiscal_year)
         WHERE is_archived = 0;
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_consolidated_group_year
            ON consolidated_statements(group_id, fiscal_year);
        """
    )

    conn.commit()


def _to_cents(amount: float) -> int:
    return int(round(float(amount) * 100))


def _from_cents(cents: int) -> float:
    return cents / 100.0


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _row_to_company(row: tuple) -> Company:
    company_id, name, bp, tax_id = row
    return Company(id=company_id, name=name, bp=bp, tax_id=tax_id)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------


def upsert_company(cfg: DatabaseConfig, company: Company) -> Company:
    """Insert a company, or update its reference data if it already exists."""
    init_database(cfg)
    now = _now_utc_iso()

    conn = _connect(cfg)
    try:
        conn.execute(
            """
            INSERT INTO companies (id, name, bp, tax_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                bp = excluded.bp,
                tax_id = excluded.tax_id,
                updated_at = ?;
            """,
            (company.id, company.name, company.bp, company.tax_id, now, now),
        )
        conn.commit()
    finally:
        conn.close()

    return company


def get_company(cfg: DatabaseConfig, company_id: str) -> Company | None:
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            "SELECT id, name, bp, tax_id FROM companies WHERE id = ?;",
            (company_id,),
        )
        row = cur.fetchone()
    finally:
        conn.close()

    return None if row is None else _row_to_company(row)


def _active_fiscal_years(
    conn: sqlite3.Connection, company_ids: Iterable[str]
) -> dict[str, tuple[int, ...]]:
    ids = list(company_ids)
    if not ids:
        return {}
    placeholders = ", ".join("?" for _ in ids)
    cur = conn.execute(
        f"""
        SELECT DISTINCT company_id, fiscal_year
          FROM financial_statements
         WHERE is_archived = 0
           AND company_id IN ({placeholders})
         ORDER BY fiscal_year DESC;
        """,
        ids,
    )
    years: dict[str, list[int]] = {cid: [] for cid in ids}
    for company_id, fiscal_year in cur.fetchall():
        years[company_id].append(int(fiscal_year))
    return {cid: tuple(ys) for cid, ys in years.items()}


def get_candidate(cfg: DatabaseConfig, company_id: str) -> CompanyCandidate | None:
    """Load a company together with the fiscal years it can be consolidated for."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            "SELECT id, name, bp, tax_id FROM companies WHERE id = ?;",
            (company_id,),
        )
        row = cur.fetchone()
        if row is None:
            return None
        years = _active_fiscal_years(conn, [company_id])
    finally:
        conn.close()

    return CompanyCandidate(company=_row_to_company(row), fiscal_years=years[company_id])


def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so that the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_companies(
    cfg: DatabaseConfig,
    term: str,
    search_by: SearchField = "name",
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[CompanyCandidate]:
    """
    Search companies by name, business-partner code or tax id.

    Parameters
    ----------
    cfg:
        Database configuration.
    term:
        Case-insensitive substring to look for. Terms shorter than two
        characters return no result.
    search_by:
        Column to search: "name", "bp" or "tax_id".
    limit:
        Maximum number of companies returned.

    Returns
    -------
    list[CompanyCandidate]
        Matching companies ordered by name, each with the fiscal years for
        which an active statement exists (most recent first).
    """
    if search_by not in ("name", "bp", "tax_id"):
        raise ValueError(
            f"Invalid search field: {search_by!r}. Expected 'name', 'bp' or 'tax_id'."
        )

    term = (term or "").strip()
    if len(term) < MIN_SEARCH_LENGTH:
        return []

    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            f"""
            SELECT id, name, bp, tax_id
              FROM companies
             WHERE LOWER({search_by}) LIKE ? ESCAPE '\\'
             ORDER BY name ASC
             LIMIT ?;
            """,
            (f"%{_escape_like(term.lower())}%", int(limit)),
        )
        companies = [_row_to_company(row) for row in cur.fetchall()]
        years = _active_fiscal_years(conn, [c.id for c in companies])
    finally:
        conn.close()

    return [CompanyCandidate(company=c, fiscal_years=years[c.id]) for c in companies]


# ---------------------------------------------------------------------------
# Balance sheets
# ---------------------------------------------------------------------------


def _find_active_statement_id(
    conn: sqlite3.Connection, company_id: str, fiscal_year: int
) -> int | None:
    cur = conn.execute(
        """
        SELECT id
          FROM financial_statements
         WHERE company_id = ? AND fiscal_year = ? AND is_archived = 0;
        """,
        (company_id, fiscal_year),
    )
    row = cur.fetchone()
    return None if row is None else int(row[0])


def save_balance_sheet(
    cfg: DatabaseConfig,
    snapshot: BalanceSheetSnapshot,
    source: StatementSource = "manual",
) -> int:
    """
    Store a balance sheet as the active statement of (company, fiscal year).

    If an active statement already exists, its lines are replaced; otherwise
    a new statement is created. Archived statements are never touched.

    Returns
    -------
    int
        Identifier of the active statement.

    Raises
    ------
    ValueError
        If the company does not exist.
    """
    init_database(cfg)
    now = _now_utc_iso()

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute("SELECT 1 FROM companies WHERE id = ?;", (snapshot.company_id,))
        if cur.fetchone() is None:
            raise ValueError(f"Unknown company: {snapshot.company_id!r}")

        statement_id = _find_active_statement_id(
            conn, snapshot.company_id, snapshot.fiscal_year
        )
        if statement_id is None:
            cur.execute(
                """
                INSERT INTO financial_statements
                    (company_id, fiscal_year, source, is_archived, created_at)
                VALUES (?, ?, ?, 0, ?);
                """,
                (snapshot.company_id, snapshot.fiscal_year, source, now),
            )
            statement_id = int(cur.lastrowid)
        else:
            cur.execute(
                """
                UPDATE financial_statements
                   SET source = ?, updated_at = ?
                 WHERE id = ?;
                """,
                (source, now, statement_id),
            )
            cur.execute(
                "DELETE FROM balance_sheet_lines WHERE statement_id = ?;",
                (statement_id,),
            )

        cur.executemany(
            """
            INSERT INTO balance_sheet_lines (statement_id, line_item, amount_cents)
            VALUES (?, ?, ?);
            """,
            [
                (statement_id, item.value, _to_cents(amount))
                for item, amount in snapshot.values.items()
            ],
        )
        conn.commit()
    finally:
        conn.close()

    logger.info(
        "Saved balance sheet #%s for %s / %s (%s)",
        statement_id,
        snapshot.company_id,
        snapshot.fiscal_year,
        source,
    )
    return statement_id


def archive_statement(cfg: DatabaseConfig, company_id: str, fiscal_year: int) -> bool:
    """
    Archive the active statement of (company, fiscal year).

    Returns
    -------
    bool
        True if a statement was archived, False if none was active.
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            UPDATE financial_statements
               SET is_archived = 1, archived_at = ?
             WHERE company_id = ? AND fiscal_year = ? AND is_archived = 0;
            """,
            (_now_utc_iso(), company_id, fiscal_year),
        )
        conn.commit()
        archived = cur.rowcount > 0
    finally:
        conn.close()

    return archived


def get_balance_sheet(
    cfg: DatabaseConfig, company_id: str, fiscal_year: int
) -> BalanceSheetSnapshot | None:
    """Load the active balance sheet of a company for a fiscal year."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        statement_id = _find_active_statement_id(conn, company_id, fiscal_year)
        if statement_id is None:
            return None
        cur = conn.execute(
            """
            SELECT line_item, amount_cents
              FROM balance_sheet_lines
             WHERE statement_id = ?;
            """,
            (statement_id,),
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    return BalanceSheetSnapshot.from_mapping(
        company_id,
        fiscal_year,
        {item: _from_cents(cents) for item, cents in rows},
        statement_id=statement_id,
    )


def list_statements(cfg: DatabaseConfig, company_id: str | None = None) -> pd.DataFrame:
    """
    Return the statements stored in the database, newest fiscal year first.

    Columns:
    - id
    - company_id
    - fiscal_year
    - source
    - is_archived
    - created_at
    """
    init_database(cfg)

    columns = ["id", "company_id", "fiscal_year", "source", "is_archived", "created_at"]
    sql = f"SELECT {', '.join(columns)} FROM financial_statements"
    params: tuple = ()
    if company_id is not None:
        sql += " WHERE company_id = ?"
        params = (company_id,)
    sql += " ORDER BY fiscal_year DESC, id DESC;"

    conn = _connect(cfg)
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()

    df = pd.DataFrame(rows, columns=columns)
    df["is_archived"] = df["is_archived"].astype(bool)
    return df


def make_snapshot_resolver(
    cfg: DatabaseConfig,
) -> Callable[[str, int], BalanceSheetSnapshot | None]:
    """Return a resolver suitable for ``engine.ConsolidationRun.compute``."""

    def resolve(company_id: str, fiscal_year: int) -> BalanceSheetSnapshot | None:
        return get_balance_sheet(cfg, company_id, fiscal_year)

    return resolve


# ---------------------------------------------------------------------------
# Consolidation groups
# ---------------------------------------------------------------------------


def _insert_members(
    cur: sqlite3.Cursor, group_id: int, perimeter: Perimeter
) -> None:
    cur.executemany(
        """
        INSERT INTO consolidation_group_members
            (group_id, position, company_id, participation_percentage,
             consolidation_method, is_parent)
        VALUES (?, ?, ?, ?, ?, ?);
        """,
        [
            (
                group_id,
                position,
                m.company_id,
                m.participation_percentage,
                m.consolidation_method.value,
                int(m.is_parent),
            )
            for position, m in enumerate(perimeter.members)
        ],
    )


def _parent_id(perimeter: Perimeter) -> str | None:
    parent = perimeter.parent
    return None if parent is None else parent.company_id


def create_group(
    cfg: DatabaseConfig,
    name: str,
    perimeter: Perimeter,
    notes: str | None = None,
) -> ConsolidationGroup:
    """Persist a perimeter as a new consolidation group (status 'draft')."""
    init_database(cfg)
    now = _now_utc_iso()

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO consolidation_groups
                (group_name, fiscal_year, parent_company_id, notes, status,
                 created_at, updated_at)
            VALUES (?, ?, ?, ?, 'draft', ?, ?);
            """,
            (name, perimeter.fiscal_year, _parent_id(perimeter), notes, now, now),
        )
        group_id = int(cur.lastrowid)
        _insert_members(cur, group_id, perimeter)
        conn.commit()
    finally:
        conn.close()

    created = get_group(cfg, group_id)
    if created is None:
        raise ValueError(f"Consolidation group with id {group_id} not found.")
    return created


def get_group(cfg: DatabaseConfig, group_id: int) -> ConsolidationGroup | None:
    """Load a consolidation group and rebuild its perimeter."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT id, group_name, fiscal_year, notes, status, created_at, updated_at
              FROM consolidation_groups
             WHERE id = ?;
            """,
            (group_id,),
        )
        row = cur.fetchone()
        if row is None:
            return None

        cur = conn.execute(
            """
            SELECT c.id, c.name, c.bp, c.tax_id,
                   m.participation_percentage, m.consolidation_method, m.is_parent
              FROM consolidation_group_members AS m
              JOIN companies AS c
                ON c.id = m.company_id
             WHERE m.group_id = ?
             ORDER BY m.position ASC;
            """,
            (group_id,),
        )
        member_rows = cur.fetchall()
    finally:
        conn.close()

    gid, name, fiscal_year, notes, status, created_at, updated_at = row
    members = tuple(
        ConsolidationMember(
            company=Company(id=cid, name=cname, bp=bp, tax_id=tax_id),
            fiscal_year=int(fiscal_year),
            participation_percentage=float(pct),
            consolidation_method=method,
            is_parent=bool(is_parent),
        )
        for cid, cname, bp, tax_id, pct, method, is_parent in member_rows
    )

    return ConsolidationGroup(
        id=int(gid),
        name=name,
        perimeter=Perimeter(fiscal_year=int(fiscal_year), members=members),
        notes=notes,
        status=status,
        created_at=_parse_ts(created_at),
        updated_at=_parse_ts(updated_at),
    )


def list_groups(cfg: DatabaseConfig) -> pd.DataFrame:
    """
    Return the consolidation groups stored in the database.

    Columns:
    - id
    - group_name
    - fiscal_year
    - parent_company_id
    - members
    - status
    - updated_at
    """
    init_database(cfg)
    columns = [
        "id",
        "group_name",
        "fiscal_year",
        "parent_company_id",
        "members",
        "status",
        "updated_at",
    ]

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT g.id, g.group_name, g.fiscal_year, g.parent_company_id,
                   COUNT(m.company_id), g.status, g.updated_at
              FROM consolidation_groups AS g
              LEFT JOIN consolidation_group_members AS m
                ON m.group_id = g.id
             GROUP BY g.id
             ORDER BY g.id DESC;
            """
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    df = pd.DataFrame(rows, columns=columns)
    df["updated_at"] = pd.to_datetime(df["updated_at"])
    return df


def update_group(
    cfg: DatabaseConfig,
    group_id: int,
    *,
    perimeter: Perimeter | None = None,
    notes: str | None = None,
    status: GroupStatus | None = None,
    expected_updated_at: datetime | None = None,
) -> ConsolidationGroup:
    """
    Update a consolidation group.

    Only non-None arguments are applied. When ``perimeter`` is given, the
    member list is replaced as a whole, and the group status goes back to
    'draft' unless ``status`` says otherwise.

    ``expected_updated_at`` enables optimistic concurrency control: when
    provided, the update is refused if the group was modified in between.
    Without it, the last write wins.

    Raises
    ------
    ValueError
        If the group does not exist.
    StaleGroupError
        If ``expected_updated_at`` does not match the stored timestamp.
    """
    init_database(cfg)
    now = _now_utc_iso()

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute("BEGIN IMMEDIATE;")
        cur.execute(
            "SELECT updated_at, fiscal_year FROM consolidation_groups WHERE id = ?;",
            (group_id,),
        )
        row = cur.fetchone()
        if row is None:
            conn.rollback()
            raise ValueError(f"Consolidation group with id {group_id} not found.")

        stored_updated_at = row[0]
        if expected_updated_at is not None:
            expected_iso = expected_updated_at.isoformat(timespec="microseconds")
            if expected_iso != stored_updated_at:
                conn.rollback()
                raise StaleGroupError(group_id, expected_iso, stored_updated_at)

        assignments: list[str] = ["updated_at = ?"]
        params: list = [now]

        if perimeter is not None:
            assignments += ["fiscal_year = ?", "parent_company_id = ?"]
            params += [perimeter.fiscal_year, _parent_id(perimeter)]
            if status is None:
                status = "draft"
            cur.execute(
                "DELETE FROM consolidation_group_members WHERE group_id = ?;",
                (group_id,),
            )
            _insert_members(cur, group_id, perimeter)

        if notes is not None:
            assignments.append("notes = ?")
            params.append(notes)

        if status is not None:
            assignments.append("status = ?")
            params.append(status)

        params.append(group_id)
        cur.execute(
            f"UPDATE consolidation_groups SET {', '.join(assignments)} WHERE id = ?;",
            params,
        )
        conn.commit()
    finally:
        conn.close()

    updated = get_group(cfg, group_id)
    if updated is None:
        raise ValueError(f"Consolidation group with id {group_id} not found.")
    return updated


# ---------------------------------------------------------------------------
# Consolidated statements
# ---------------------------------------------------------------------------


def save_consolidated_statement(
    cfg: DatabaseConfig, group_id: int, result: ConsolidationResult
) -> int:
    """
    Store a consolidated balance sheet as an immutable child of a group.

    The group status becomes 'computed'.

    Returns
    -------
    int
        Identifier of the stored consolidated statement.
    """
    init_database(cfg)
    now = _now_utc_iso()
    sheet = result.balance_sheet

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute("SELECT 1 FROM consolidation_groups WHERE id = ?;", (group_id,))
        if cur.fetchone() is None:
            raise ValueError(f"Consolidation group with id {group_id} not found.")

        cur.execute(
            """
            INSERT INTO consolidated_statements
                (group_id, fiscal_year, created_at, balanced, difference_cents)
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                group_id,
                result.fiscal_year,
                now,
                int(result.balance_check.balanced),
                _to_cents(result.balance_check.difference),
            ),
        )
        statement_id = int(cur.lastrowid)

        lines = [
            (statement_id, "summary", name, _to_cents(getattr(sheet, name)))
            for name in _SUMMARY_FIELDS
        ]
        lines += [
            (statement_id, "detail", item.value, _to_cents(amount))
            for item, amount in sheet.details.items()
        ]
        cur.executemany(
            """
            INSERT INTO consolidated_statement_lines
                (statement_id, section, key, amount_cents)
            VALUES (?, ?, ?, ?);
            """,
            lines,
        )

        cur.execute(
            """
            UPDATE consolidation_groups
               SET status = 'computed', updated_at = ?
             WHERE id = ?;
            """,
            (now, group_id),
        )
        conn.commit()
    finally:
        conn.close()

    return statement_id


def load_consolidated_statement(
    cfg: DatabaseConfig, group_id: int, fiscal_year: int | None = None
) -> ConsolidatedBalanceSheet | None:
    """Load the most recent consolidated balance sheet of a group."""
    init_database(cfg)

    sql = "SELECT id FROM consolidated_statements WHERE group_id = ?"
    params: tuple = (group_id,)
    if fiscal_year is not None:
        sql += " AND fiscal_year = ?"
        params = (group_id, fiscal_year)
    sql += " ORDER BY id DESC LIMIT 1;"

    conn = _connect(cfg)
    try:
        row = conn.execute(sql, params).fetchone()
        if row is None:
            return None
        cur = conn.execute(
            """
            SELECT section, key, amount_cents
              FROM consolidated_statement_lines
             WHERE statement_id = ?;
            """,
            (row[0],),
        )
        lines = cur.fetchall()
    finally:
        conn.close()

    summary = {key: _from_cents(c) for section, key, c in lines if section == "summary"}
    details = {
        LineItem.parse(key): _from_cents(c)
        for section, key, c in lines
        if section == "detail"
    }
    return ConsolidatedBalanceSheet(details=details, **summary)
