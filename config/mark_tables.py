"""Best-selection mark tables loaded from JSON.

The file holds one entry per metric (``amount``, ``efficiency``,
``absenteeism``, ``rejection``), each an ascending list of
``{"maxRank": <int or null>, "marks": <int>}`` rules. A ``null`` ceiling
covers every remaining rank. Metrics missing from the file keep the
built-in tables.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

from line_ranking import DEFAULT_MARK_TABLES, normalize_mark_rules


DEFAULT_MARK_TABLES_PATH = Path(__file__).resolve().parent / "mark_tables.json"


def default_mark_tables() -> Dict[str, tuple]:
    return {name: normalize_mark_rules(rules) for name, rules in DEFAULT_MARK_TABLES.items()}


def parse_mark_tables(raw: Any) -> Dict[str, tuple]:
    """Validate a decoded mark-table mapping and merge it over the defaults."""

    if not isinstance(raw, Mapping):
        raise ValueError("mark tables must be a JSON object")
    tables = default_mark_tables()
    for name, rules in raw.items():
        if name not in tables:
            raise ValueError(f"unknown mark table {name!r}")
        if not isinstance(rules, list):
            raise ValueError(f"mark table {name!r} must be a list of rules")
        tables[name] = normalize_mark_rules(rules)
    return tables


def load_mark_tables(path: str | Path | None = None) -> Dict[str, tuple]:
    """Read mark tables from ``path`` (defaults to ``config/mark_tables.json``).

    A missing file yields the built-in tables. Malformed JSON or invalid rules
    raise ``ValueError``.
    """

    mark_path = Path(path) if path else DEFAULT_MARK_TABLES_PATH
    if not mark_path.exists():
        return default_mark_tables()
    with open(mark_path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)
    return parse_mark_tables(raw)
