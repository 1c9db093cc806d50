"""Supabase table and column names.

The floor views read three PostgREST tables: per-line target headers, hourly
production entries and hourly end-line inspection entries. Code refers to
tables and columns by identifier; deployments rename them through
``SUPABASE_SCHEMA_JSON``. Identifiers without a mapping are used as is.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class SupabaseTable:
    """Configuration for a Supabase table."""

    name: str
    columns: Mapping[str, str] = field(default_factory=dict)


# Overridden per table by the SUPABASE_SCHEMA_JSON environment variable.
_DEFAULT_SUPABASE_SCHEMA: Dict[str, SupabaseTable] = {
    "target_headers": SupabaseTable(
        name="target_setter_headers",
        columns={
            "id": "id",
            "factory": "factory",
            "date": "date",
            "assigned_building": "assigned_building",
            "line": "line",
            "buyer": "buyer",
            "style": "style",
            "total_manpower": "total_manpower",
            "manpower_present": "manpower_present",
            "manpower_absent": "manpower_absent",
            "working_hour": "working_hour",
            "plan_quantity": "plan_quantity",
            "plan_efficiency_percent": "plan_efficiency_percent",
            "smv": "smv",
            "target_full_day": "target_full_day",
            "capacity": "capacity",
        },
    ),
    "hourly_productions": SupabaseTable(
        name="hourly_productions",
        columns={
            "id": "id",
            "header_id": "header_id",
            "factory": "factory",
            "production_date": "production_date",
            "hour": "hour",
            "achieved_qty": "achieved_qty",
            "hourly_efficiency": "hourly_efficiency",
        },
    ),
    "hourly_inspections": SupabaseTable(
        name="endline_hour_entries",
        columns={
            "id": "id",
            "factory": "factory",
            "building": "building",
            "line": "line",
            "report_date": "report_date",
            "hour_label": "hour_label",
            "hour_index": "hour_index",
            "inspected_qty": "inspected_qty",
            "passed_qty": "passed_qty",
            "defective_pcs": "defective_pcs",
            "after_repair": "after_repair",
            "total_defects": "total_defects",
        },
    ),
}


def _string_pairs(columns: Any) -> Dict[str, str]:
    if not isinstance(columns, Mapping):
        return {}
    return {key: value for key, value in columns.items() if isinstance(key, str) and isinstance(value, str)}


def _read_overrides(raw: str | None) -> Mapping[str, Any]:
    """Parse ``SUPABASE_SCHEMA_JSON``; anything but a JSON object is ignored."""

    try:
        parsed = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, Mapping) else {}


def _override_table(base: SupabaseTable | None, entry: Any) -> SupabaseTable | None:
    # An override must name its table; its columns extend the defaults.
    if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str) or not entry["name"]:
        return None
    columns = {**(base.columns if base else {}), **_string_pairs(entry.get("columns"))}
    return SupabaseTable(name=entry["name"], columns=columns)


def build_schema(raw: str | None = None) -> Dict[str, SupabaseTable]:
    """Return the default schema with the JSON overrides in ``raw`` applied."""

    schema = dict(_DEFAULT_SUPABASE_SCHEMA)
    for identifier, entry in _read_overrides(raw).items():
        table = _override_table(schema.get(identifier), entry) if isinstance(identifier, str) else None
        if table is not None:
            schema[identifier] = table
    return schema


SUPABASE_SCHEMA: Dict[str, SupabaseTable] = build_schema(os.getenv("SUPABASE_SCHEMA_JSON"))


def _table(identifier: str) -> SupabaseTable:
    # Unknown tables keep their identifier as name and map no columns.
    return SUPABASE_SCHEMA.get(identifier) or SupabaseTable(name=identifier)


def table_name(identifier: str) -> str:
    return _table(identifier).name


def column_name(table_identifier: str, column_identifier: str) -> str:
    return _table(table_identifier).columns.get(column_identifier, column_identifier)


def table_columns(table_identifier: str) -> Mapping[str, str]:
    """Return the identifier-to-column mapping of ``table_identifier``."""

    return _table(table_identifier).columns


def from_supabase_row(table_identifier: str, row: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``row`` with Supabase column names mapped back to identifiers."""

    reverse = {actual: logical for logical, actual in table_columns(table_identifier).items()}
    return {reverse.get(key, key): value for key, value in row.items()}
