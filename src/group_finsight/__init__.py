# Group FinSight - Multi-entity consolidation engine for SMB groups
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Group FinSight
--------------

A Python-based consolidation application for groups of Small and
Medium-sized Businesses (SMBs). Given a perimeter of related companies,
each with a balance sheet for a common fiscal year, it computes a single
consolidated balance sheet and the share of outside shareholders.

Main capabilities:
- perimeter building (2 to 15 companies, one parent, per-member method
  and participation percentage),
- full, proportional and equity-method consolidation,
- minority interests and parent equity, with swappable strategies,
- consolidated balance sheet with subtotals and a balance check,
- a database-first architecture for companies, balance sheets and saved
  consolidation groups (SQLite),
- CSV import, document-extraction import, CSV and Excel exports.

Group FinSight separates computation (engine), configuration (TOML), and
presentation (CLI), making it suitable for scripting and consulting
workflows.


Version: 0.1.0

Usage:
    python -m group_finsight.cli --help
"""

__all__ = ["engine", "perimeter", "aggregation", "statement", "db", "views"]

__version__ = "0.1.0"
