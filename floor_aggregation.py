"""Per-line and per-building floor aggregation.

Folds the day's target headers, hourly production rows and hourly end-line
inspection rows into the aggregates that :mod:`line_ranking` ranks, plus a
factory-wide summary, and compares lines, buildings or segments across a
range of days. Efficiency is minutes based: produced minutes
(``achieved × SMV``) over available minutes (``manpower present × 60``).
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping

import numpy as np
import pandas as pd

from line_ranking import InvalidInputError, clamp_percent, compute_best_selection, to_number_or_zero


logger = logging.getLogger(__name__)

UNKNOWN_BUILDING = "UNKNOWN"
LEVELS = ("line", "building")

HEADER_NUMERIC_COLUMNS = [
    "total_manpower",
    "manpower_present",
    "manpower_absent",
    "working_hour",
    "plan_efficiency_percent",
    "smv",
    "target_full_day",
]
INSPECTION_NUMERIC_COLUMNS = [
    "hour_index",
    "inspected_qty",
    "passed_qty",
    "defective_pcs",
    "total_defects",
]


def _to_num(series: pd.Series) -> pd.Series:
    numeric = pd.to_numeric(series, errors="coerce").astype(float)
    return numeric.replace([np.inf, -np.inf], np.nan).fillna(0.0)


def _records(rows, kind: str) -> list:
    if rows is None:
        return []
    if isinstance(rows, (str, bytes, Mapping)) or not isinstance(rows, Iterable):
        raise InvalidInputError(f"{kind} must be a list of records")
    records = list(rows)
    for index, row in enumerate(records):
        if not isinstance(row, Mapping):
            raise InvalidInputError(f"{kind} #{index} is not a keyed record")
    return records


def _pick(row: Mapping[str, Any], *names: str):
    for name in names:
        value = row.get(name)
        if value is not None:
            return value
    return None


def _ratio_percent(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    # Zero or negative denominators give 0 rather than inf/NaN.
    return (numerator.div(denominator.where(denominator > 0)) * 100.0).fillna(0.0)


def _number(value: Any):
    number = to_number_or_zero(value)
    return int(number) if number.is_integer() else number


def _hour(value: Any):
    if value is None or pd.isna(value):
        return None
    return _number(value)


def _clean_name(value: Any) -> str | None:
    """Strip a line or building name; blank names become ``None``."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    text = str(value).strip()
    return text or None


def _log_unnamed_lines(df: pd.DataFrame, kind: str) -> None:
    unnamed = int(df["line"].isna().sum())
    if unnamed:
        logger.debug("%d %s have no line name; counted for building and factory totals only", unnamed, kind)


def _group_column(level: str) -> str:
    if level not in LEVELS:
        raise ValueError(f"level must be one of {LEVELS}, not {level!r}")
    return level


def base_target_per_hour(header: Mapping[str, Any]) -> float:
    """Hourly target for a header.

    Rules:
    - manpower present and SMV both positive → capacity target
      ``manpower × 60 × plan efficiency / SMV``
    - otherwise, working hours positive → ``target_full_day / working_hour``
    - else → 0
    """
    manpower_present = to_number_or_zero(header.get("manpower_present"))
    smv = to_number_or_zero(header.get("smv"))
    plan_eff = to_number_or_zero(header.get("plan_efficiency_percent")) / 100.0

    from_capacity = (manpower_present * 60.0 * plan_eff) / smv if manpower_present > 0 and smv > 0 else 0.0

    working_hour = to_number_or_zero(header.get("working_hour"))
    target_full_day = to_number_or_zero(header.get("target_full_day"))
    from_full_day = target_full_day / working_hour if working_hour > 0 else 0.0

    return from_capacity or from_full_day or 0.0


def header_base_target(header: Mapping[str, Any]) -> int:
    """Whole-day target for a header, rounded half up."""
    total = base_target_per_hour(header) * to_number_or_zero(header.get("working_hour"))
    return int(math.floor(total + 0.5))


def _header_frame(headers: Iterable[Mapping[str, Any]] | None) -> pd.DataFrame:
    rows = []
    for header in _records(headers, "target header"):
        header_id = _pick(header, "id", "_id")
        row = {
            "header_id": None if header_id is None else str(header_id),
            "line": _clean_name(header.get("line")),
            "building": _clean_name(header.get("assigned_building")) or UNKNOWN_BUILDING,
            "base_target": header_base_target(header),
        }
        for column in HEADER_NUMERIC_COLUMNS:
            row[column] = header.get(column)
        rows.append(row)

    df = pd.DataFrame(rows, columns=["header_id", "line", "building", "base_target", *HEADER_NUMERIC_COLUMNS])
    for column in ["base_target", *HEADER_NUMERIC_COLUMNS]:
        df[column] = _to_num(df[column])
    _log_unnamed_lines(df, "target headers")
    return df


def _production_rows(header_df: pd.DataFrame, productions: Iterable[Mapping[str, Any]] | None) -> pd.DataFrame:
    rows = []
    for record in _records(productions, "production entry"):
        header_id = _pick(record, "header_id", "headerId")
        rows.append(
            {
                "header_id": None if header_id is None else str(header_id),
                "hour": record.get("hour"),
                "achieved_qty": _pick(record, "achieved_qty", "achievedQty"),
            }
        )
    prod = pd.DataFrame(rows, columns=["header_id", "hour", "achieved_qty"])
    prod["hour"] = _to_num(prod["hour"])
    prod["achieved_qty"] = _to_num(prod["achieved_qty"])

    prod = prod[prod["header_id"].notna()]
    merged = prod.merge(
        header_df.loc[header_df["header_id"].notna(), ["header_id", "line", "building", "manpower_present", "smv"]],
        on="header_id",
        how="inner",
    )
    skipped = len(prod) - len(merged)
    if skipped > 0:
        logger.debug("Skipped %d production rows without a matching target header", skipped)

    valid = (merged["manpower_present"] > 0) & (merged["smv"] > 0)
    merged["counts_for_efficiency"] = valid
    merged["produce_minutes"] = (merged["achieved_qty"] * merged["smv"]).where(valid, 0.0)
    merged["available_minutes"] = (merged["manpower_present"] * 60.0).where(valid, 0.0)
    return merged


def _inspection_frame(inspections: Iterable[Mapping[str, Any]] | None) -> pd.DataFrame:
    rows = []
    for record in _records(inspections, "inspection entry"):
        rows.append(
            {
                "line": _clean_name(record.get("line")),
                "building": _clean_name(record.get("building")) or UNKNOWN_BUILDING,
                "hour_index": _pick(record, "hour_index", "hourIndex"),
                "inspected_qty": _pick(record, "inspected_qty", "inspectedQty"),
                "passed_qty": _pick(record, "passed_qty", "passedQty"),
                "defective_pcs": _pick(record, "defective_pcs", "defectivePcs"),
                "total_defects": _pick(record, "total_defects", "totalDefects"),
            }
        )
    df = pd.DataFrame(rows, columns=["line", "building", *INSPECTION_NUMERIC_COLUMNS])
    for column in INSPECTION_NUMERIC_COLUMNS:
        df[column] = _to_num(df[column])
    _log_unnamed_lines(df, "inspection rows")
    return df


def _latest_hour(hourly: pd.DataFrame, key: str | None = None) -> pd.DataFrame:
    """Keep the highest hour (per ``key`` when given) with its efficiency."""
    if key is None:
        latest = hourly.sort_values("hour").tail(1)
    else:
        latest = hourly.sort_values("hour").groupby(key).tail(1).set_index(key)
    latest = latest.copy()
    latest["efficiency"] = _ratio_percent(latest["produce_minutes"], latest["available_minutes"])
    return latest


def aggregate_production(
    headers: Iterable[Mapping[str, Any]] | None,
    productions: Iterable[Mapping[str, Any]] | None,
    level: str = "line",
) -> pd.DataFrame:
    """Production totals per line or building.

    Returns a frame indexed by group with ``target_qty``, ``achieved_qty``,
    ``variance_qty``, ``avg_eff_percent``, ``current_hour`` (NaN when no
    hour counted towards efficiency) and ``current_hour_efficiency``.
    """
    key = _group_column(level)
    header_df = _header_frame(headers)
    merged = _production_rows(header_df, productions)

    result = pd.DataFrame({"target_qty": header_df.groupby(key)["base_target"].sum()})
    sums = merged.groupby(key)[["achieved_qty", "produce_minutes", "available_minutes"]].sum()
    result = result.join(sums, how="left").fillna(0.0)

    result["variance_qty"] = result["achieved_qty"] - result["target_qty"]
    result["avg_eff_percent"] = _ratio_percent(result["produce_minutes"], result["available_minutes"])

    hourly = (
        merged[merged["counts_for_efficiency"]]
        .groupby([key, "hour"])[["produce_minutes", "available_minutes"]]
        .sum()
        .reset_index()
    )
    latest = _latest_hour(hourly, key)
    result["current_hour"] = latest["hour"].reindex(result.index)
    result["current_hour_efficiency"] = latest["efficiency"].reindex(result.index).fillna(0.0)

    return result.drop(columns=["produce_minutes", "available_minutes"])


def aggregate_quality(inspections: Iterable[Mapping[str, Any]] | None, level: str = "line") -> pd.DataFrame:
    """End-line quality totals and rates per line or building."""
    key = _group_column(level)
    df = _inspection_frame(inspections)

    result = df.groupby(key).agg(
        total_inspected=("inspected_qty", "sum"),
        total_passed=("passed_qty", "sum"),
        total_defective_pcs=("defective_pcs", "sum"),
        total_defects=("total_defects", "sum"),
        max_hour_index=("hour_index", "max"),
    )
    result["rft_percent"] = _ratio_percent(result["total_passed"], result["total_inspected"])
    result["defect_rate_percent"] = _ratio_percent(result["total_defective_pcs"], result["total_inspected"])
    result["dhu_percent"] = _ratio_percent(result["total_defects"], result["total_inspected"])
    result["current_hour"] = result["max_hour_index"].where(result["max_hour_index"] > 0)
    return result.drop(columns=["max_hour_index"])


def aggregate_manpower(headers: Iterable[Mapping[str, Any]] | None, level: str = "line") -> pd.DataFrame:
    """Manpower totals and absenteeism per line or building."""
    key = _group_column(level)
    header_df = _header_frame(headers)
    result = (
        header_df.groupby(key)[["total_manpower", "manpower_present", "manpower_absent"]]
        .sum()
        .rename(columns={"total_manpower": "total", "manpower_present": "present", "manpower_absent": "absent"})
    )
    result["absenteeism_percent"] = _ratio_percent(result["absent"], result["total"])
    return result


def _production_payload(row) -> Dict[str, Any]:
    if row is None:
        return {
            "targetQty": 0,
            "achievedQty": 0,
            "varianceQty": 0,
            "avgEffPercent": 0.0,
            "currentHour": None,
            "currentHourEfficiency": 0.0,
        }
    return {
        "targetQty": _number(row["target_qty"]),
        "achievedQty": _number(row["achieved_qty"]),
        "varianceQty": _number(row["variance_qty"]),
        "avgEffPercent": clamp_percent(row["avg_eff_percent"]),
        "currentHour": _hour(row["current_hour"]),
        "currentHourEfficiency": clamp_percent(row["current_hour_efficiency"]),
    }


def _quality_payload(row) -> Dict[str, Any]:
    if row is None:
        return {
            "totalInspected": 0,
            "totalPassed": 0,
            "totalDefectivePcs": 0,
            "totalDefects": 0,
            "rftPercent": 0.0,
            "defectRatePercent": 0.0,
            "dhuPercent": 0.0,
            "currentHour": None,
        }
    return {
        "totalInspected": _number(row["total_inspected"]),
        "totalPassed": _number(row["total_passed"]),
        "totalDefectivePcs": _number(row["total_defective_pcs"]),
        "totalDefects": _number(row["total_defects"]),
        "rftPercent": clamp_percent(row["rft_percent"]),
        "defectRatePercent": clamp_percent(row["defect_rate_percent"]),
        "dhuPercent": clamp_percent(row["dhu_percent"]),
        "currentHour": _hour(row["current_hour"]),
    }


def _manpower_payload(row) -> Dict[str, Any]:
    if row is None:
        return {"total": 0, "present": 0, "absent": 0, "absenteeismPercent": 0.0}
    return {
        "total": _number(row["total"]),
        "present": _number(row["present"]),
        "absent": _number(row["absent"]),
        "absenteeismPercent": clamp_percent(row["absenteeism_percent"]),
    }


def _lookup(frame: pd.DataFrame, name):
    return frame.loc[name] if name in frame.index else None


def build_entity_aggregates(
    headers: Iterable[Mapping[str, Any]] | None,
    productions: Iterable[Mapping[str, Any]] | None,
    inspections: Iterable[Mapping[str, Any]] | None,
    level: str = "line",
) -> List[Dict[str, Any]]:
    """Merge production, quality and manpower views into one record per group.

    Records are keyed by ``line`` or ``building`` (the ``level``) and sorted
    by name. Names are stripped; rows without a line name only count at
    building level, and buildings without a name are left out of the
    building list.
    """
    key = _group_column(level)
    headers = _records(headers, "target header")
    production = aggregate_production(headers, productions, level)
    quality = aggregate_quality(inspections, level)
    manpower = aggregate_manpower(headers, level)

    names = set(production.index) | set(quality.index)
    if level == "building":
        names = {name for name in names if name and name != UNKNOWN_BUILDING}

    return [
        {
            key: name,
            "production": _production_payload(_lookup(production, name)),
            "quality": _quality_payload(_lookup(quality, name)),
            "manpower": _manpower_payload(_lookup(manpower, name)),
        }
        for name in sorted(names, key=str)
    ]


def summarize_factory(
    headers: Iterable[Mapping[str, Any]] | None,
    productions: Iterable[Mapping[str, Any]] | None,
    inspections: Iterable[Mapping[str, Any]] | None,
) -> Dict[str, Dict[str, Any]]:
    """Factory-wide production and quality totals."""
    header_df = _header_frame(headers)
    merged = _production_rows(header_df, productions)

    total_target = float(header_df["base_target"].sum())
    total_achieved = float(merged["achieved_qty"].sum())
    produce = float(merged["produce_minutes"].sum())
    available = float(merged["available_minutes"].sum())

    hourly = (
        merged[merged["counts_for_efficiency"]]
        .groupby("hour")[["produce_minutes", "available_minutes"]]
        .sum()
        .reset_index()
    )
    current_hour = None
    current_hour_efficiency = 0.0
    if not hourly.empty:
        latest = _latest_hour(hourly).iloc[0]
        current_hour = _hour(latest["hour"])
        current_hour_efficiency = float(latest["efficiency"])

    inspection_df = _inspection_frame(inspections)
    inspected = float(inspection_df["inspected_qty"].sum())
    passed = float(inspection_df["passed_qty"].sum())
    defective = float(inspection_df["defective_pcs"].sum())
    defects = float(inspection_df["total_defects"].sum())
    max_hour_index = inspection_df["hour_index"].max() if not inspection_df.empty else 0.0

    def percent(part: float, whole: float) -> float:
        return clamp_percent(part / whole * 100.0) if whole > 0 else 0.0

    return {
        "production": {
            "totalTargetQty": _number(total_target),
            "totalAchievedQty": _number(total_achieved),
            "totalVarianceQty": _number(total_achieved - total_target),
            "avgEffPercent": percent(produce, available),
            "currentHour": current_hour,
            "currentHourEfficiency": clamp_percent(current_hour_efficiency),
        },
        "quality": {
            "totalInspected": _number(inspected),
            "totalPassed": _number(passed),
            "totalDefectivePcs": _number(defective),
            "totalDefects": _number(defects),
            "rftPercent": percent(passed, inspected),
            "defectRatePercent": percent(defective, inspected),
            "dhuPercent": percent(defects, inspected),
            "currentHour": _hour(max_hour_index) if max_hour_index > 0 else None,
        },
    }


def build_floor_summary(
    headers: Iterable[Mapping[str, Any]] | None,
    productions: Iterable[Mapping[str, Any]] | None,
    inspections: Iterable[Mapping[str, Any]] | None,
    *,
    mark_tables: Mapping[str, Any] | None = None,
) -> Dict[str, Any]:
    """Floor summary payload with best line and best building selections."""
    headers = _records(headers, "target header")
    productions = _records(productions, "production entry")
    inspections = _records(inspections, "inspection entry")

    lines = build_entity_aggregates(headers, productions, inspections, "line")
    buildings = build_entity_aggregates(headers, productions, inspections, "building")

    return {
        "summary": summarize_factory(headers, productions, inspections),
        "lines": lines,
        "buildings": buildings,
        "bestLineSelection": compute_best_selection(lines, label_key="line", mark_tables=mark_tables),
        "bestBuildingSelection": compute_best_selection(buildings, label_key="building", mark_tables=mark_tables),
    }


# ---------------------------------------------------------------------------
# Floor comparison across a date range
# ---------------------------------------------------------------------------

GROUP_BY_OPTIONS = ("line", "building", "segment")
SEGMENT_SEPARATOR = "__"
BUILDING_ORDER = ("A-2", "B-2", "A-3", "B-3", "A-4", "B-4", "A-5", "B-5")
LINE_NAMES = tuple(f"Line-{number}" for number in range(1, 16))

QUALITY_SUM_COLUMNS = ["inspected_qty", "passed_qty", "defective_pcs", "total_defects"]
PRODUCTION_SUM_COLUMNS = ["achieved_qty", "produce_minutes", "available_minutes"]


def _day_key(value: Any) -> str | None:
    """``YYYY-MM-DD`` of a date, datetime or ISO string; ``None`` if unreadable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()[:10]).isoformat()
    except ValueError:
        return None


def _line_sort_key(name: Any) -> int:
    match = re.search(r"(\d+)", str(name or ""))
    return int(match.group(1)) if match else 9999


def _building_sort_key(name: Any) -> int:
    return BUILDING_ORDER.index(name) if name in BUILDING_ORDER else 999


def _segment_key(*parts: str) -> str:
    return SEGMENT_SEPARATOR.join(part or "" for part in parts)


def _filter_names(df: pd.DataFrame, building: str | None, line: str | None) -> pd.DataFrame:
    if building:
        df = df[df["building"] == building]
    if line:
        df = df[df["line"] == line]
    return df


def _compare_header_frame(headers, building: str | None, line: str | None) -> pd.DataFrame:
    rows = []
    for header in _records(headers, "target header"):
        header_id = _pick(header, "id", "_id")
        rows.append(
            {
                "header_id": None if header_id is None else str(header_id),
                "day": _day_key(header.get("date")),
                "building": _clean_name(header.get("assigned_building")) or "",
                "line": _clean_name(header.get("line")) or "",
                "buyer": _clean_name(header.get("buyer")) or "",
                "style": _clean_name(header.get("style")) or "",
                "target_qty": header.get("target_full_day"),
                "manpower_present": header.get("manpower_present"),
                "smv": header.get("smv"),
            }
        )
    df = pd.DataFrame(
        rows,
        columns=["header_id", "day", "building", "line", "buyer", "style", "target_qty", "manpower_present", "smv"],
    )
    for column in ["target_qty", "manpower_present", "smv"]:
        df[column] = _to_num(df[column])
    return _filter_names(df, building, line)


def _compare_production_frame(header_df: pd.DataFrame, productions) -> pd.DataFrame:
    rows = []
    for record in _records(productions, "production entry"):
        header_id = _pick(record, "header_id", "headerId")
        rows.append(
            {
                "header_id": None if header_id is None else str(header_id),
                "day": _day_key(_pick(record, "production_date", "productionDate")),
                "achieved_qty": _pick(record, "achieved_qty", "achievedQty"),
            }
        )
    prod = pd.DataFrame(rows, columns=["header_id", "day", "achieved_qty"])
    prod["achieved_qty"] = _to_num(prod["achieved_qty"])
    prod = prod[prod["header_id"].notna()]

    headers = header_df.loc[
        header_df["header_id"].notna(), ["header_id", "day", "key", "manpower_present", "smv"]
    ].rename(columns={"day": "header_day"})
    merged = prod.merge(headers, on="header_id", how="inner")

    # Rows without their own production date fall on the header's day.
    merged["day"] = merged["day"].where(merged["day"].notna(), merged["header_day"])
    valid = (merged["manpower_present"] > 0) & (merged["smv"] > 0)
    merged["produce_minutes"] = (merged["achieved_qty"] * merged["smv"]).where(valid, 0.0)
    merged["available_minutes"] = (merged["manpower_present"] * 60.0).where(valid, 0.0)
    return merged


def _compare_inspection_frame(inspections, building: str | None, line: str | None) -> pd.DataFrame:
    rows = []
    for record in _records(inspections, "inspection entry"):
        rows.append(
            {
                "day": _day_key(_pick(record, "report_date", "reportDate")),
                "building": _clean_name(record.get("building")) or "",
                "line": _clean_name(record.get("line")) or "",
                "inspected_qty": _pick(record, "inspected_qty", "inspectedQty"),
                "passed_qty": _pick(record, "passed_qty", "passedQty"),
                "defective_pcs": _pick(record, "defective_pcs", "defectivePcs"),
                "total_defects": _pick(record, "total_defects", "totalDefects"),
            }
        )
    df = pd.DataFrame(rows, columns=["day", "building", "line", *QUALITY_SUM_COLUMNS])
    for column in QUALITY_SUM_COLUMNS:
        df[column] = _to_num(df[column])
    return _filter_names(df, building, line)


def _with_quality_rates(sums: pd.DataFrame) -> pd.DataFrame:
    sums = sums.copy()
    sums["rft_percent"] = _ratio_percent(sums["passed_qty"], sums["inspected_qty"])
    sums["defect_rate_percent"] = _ratio_percent(sums["defective_pcs"], sums["inspected_qty"])
    sums["dhu_percent"] = _ratio_percent(sums["total_defects"], sums["inspected_qty"])
    return sums


def _quality_brief(row) -> Dict[str, Any]:
    if row is None:
        return {"totalInspected": 0, "rftPercent": 0.0, "defectRatePercent": 0.0, "dhuPercent": 0.0}
    return {
        "totalInspected": _number(row["inspected_qty"]),
        "rftPercent": clamp_percent(row["rft_percent"]),
        "defectRatePercent": clamp_percent(row["defect_rate_percent"]),
        "dhuPercent": clamp_percent(row["dhu_percent"]),
    }


def _compare_production_brief(target: float, achieved: float, produce: float, available: float, eff_field: str):
    return {
        "targetQty": _number(target),
        "achievedQty": _number(achieved),
        "varianceQty": _number(achieved - target),
        eff_field: clamp_percent(produce / available * 100.0) if available > 0 else 0.0,
    }


def _blank_key(key: str) -> bool:
    return not key.replace(SEGMENT_SEPARATOR, "")


def _compare_sort_key(group_by: str):
    if group_by == "building":
        return lambda row: (_building_sort_key(row["key"]), row["key"])
    if group_by == "segment":
        return lambda row: (
            _building_sort_key(row["building"]),
            row["building"],
            _line_sort_key(row["line"]),
            row["line"],
            row["buyer"],
            row["style"],
        )
    return lambda row: (_line_sort_key(row["key"]), row["key"])


def build_floor_compare(
    headers: Iterable[Mapping[str, Any]] | None,
    productions: Iterable[Mapping[str, Any]] | None,
    inspections: Iterable[Mapping[str, Any]] | None,
    *,
    start,
    end,
    group_by: str = "line",
    building: str | None = None,
    line: str | None = None,
) -> Dict[str, Any]:
    """Compare lines, buildings or segments over the days ``start``..``end``.

    ``group_by`` is ``"line"``, ``"building"`` or ``"segment"`` (building,
    line, buyer and style). Segments take the quality of their building and
    line, since inspections carry no buyer or style. Targets are the
    headers' ``target_full_day``.

    Returns ``groupBy``, ``meta`` (buildings and lines for pickers), a
    ``summary`` with per-day averages, a per-day ``series`` covering every
    day of the range and the sorted comparison ``rows``.

    Raises:
        ValueError: unknown ``group_by``, unreadable dates or ``end`` before
            ``start``.
        InvalidInputError: rows that are not lists of records.
    """
    if group_by not in GROUP_BY_OPTIONS:
        raise ValueError(f"group_by must be one of {GROUP_BY_OPTIONS}, not {group_by!r}")
    start_day, end_day = pd.Timestamp(start), pd.Timestamp(end)
    if pd.isna(start_day) or pd.isna(end_day):
        raise ValueError("start and end dates are required")
    start_day, end_day = start_day.normalize(), end_day.normalize()
    if end_day < start_day:
        raise ValueError("end date must not be before start date")
    days = [day.date().isoformat() for day in pd.date_range(start_day, end_day, freq="D")]
    building, line = _clean_name(building), _clean_name(line)
    if line and line.upper() == "ALL":
        line = None

    header_df = _compare_header_frame(headers, building, line)
    if group_by == "segment":
        header_keys = (
            header_df["building"] + SEGMENT_SEPARATOR + header_df["line"]
            + SEGMENT_SEPARATOR + header_df["buyer"] + SEGMENT_SEPARATOR + header_df["style"]
        )
    else:
        header_keys = header_df[group_by]
    header_df = header_df.assign(key=header_keys)
    prod = _compare_production_frame(header_df, productions)

    insp = _compare_inspection_frame(inspections, building, line)
    if group_by == "segment":
        quality_keys = insp["building"] + SEGMENT_SEPARATOR + insp["line"]
    else:
        quality_keys = insp[group_by]
    insp = insp.assign(key=quality_keys)

    production = (
        header_df.groupby("key")
        .agg(
            building=("building", "first"),
            line=("line", "first"),
            buyer=("buyer", "first"),
            style=("style", "first"),
            target_qty=("target_qty", "sum"),
        )
        .join(prod.groupby("key")[PRODUCTION_SUM_COLUMNS].sum(), how="left")
    )
    production[PRODUCTION_SUM_COLUMNS] = production[PRODUCTION_SUM_COLUMNS].fillna(0.0)
    quality = _with_quality_rates(insp.groupby("key")[QUALITY_SUM_COLUMNS].sum())
    quality_names = insp.groupby("key")[["building", "line"]].first()

    rows = []
    covered = set()
    for key, p in production.iterrows():
        if _blank_key(key):
            continue
        quality_key = _segment_key(p["building"], p["line"]) if group_by == "segment" else key
        covered.add(quality_key)
        rows.append(
            {
                "key": key,
                "building": p["building"],
                "line": p["line"] if group_by != "building" else "",
                "buyer": p["buyer"] if group_by == "segment" else "",
                "style": p["style"] if group_by == "segment" else "",
                "production": _compare_production_brief(
                    p["target_qty"], p["achieved_qty"], p["produce_minutes"], p["available_minutes"], "avgEffPercent"
                ),
                "quality": _quality_brief(_lookup(quality, quality_key)),
            }
        )
    for key in quality.index:
        if _blank_key(key) or key in covered:
            continue
        names = quality_names.loc[key]
        rows.append(
            {
                "key": _segment_key(names["building"], names["line"], "", "") if group_by == "segment" else key,
                "building": names["building"],
                "line": names["line"] if group_by != "building" else "",
                "buyer": "",
                "style": "",
                "production": _compare_production_brief(0.0, 0.0, 0.0, 0.0, "avgEffPercent"),
                "quality": _quality_brief(quality.loc[key]),
            }
        )
    rows.sort(key=_compare_sort_key(group_by))

    target_by_day = header_df.groupby("day")["target_qty"].sum()
    production_by_day = prod.groupby("day")[PRODUCTION_SUM_COLUMNS].sum()
    quality_by_day = _with_quality_rates(insp.groupby("day")[QUALITY_SUM_COLUMNS].sum())
    series = []
    for day in days:
        produced = _lookup(production_by_day, day)
        series.append(
            {
                "date": day,
                "production": _compare_production_brief(
                    float(target_by_day.get(day, 0.0)),
                    0.0 if produced is None else produced["achieved_qty"],
                    0.0 if produced is None else produced["produce_minutes"],
                    0.0 if produced is None else produced["available_minutes"],
                    "effPercent",
                ),
                "quality": _quality_brief(_lookup(quality_by_day, day)),
            }
        )

    total_target = float(header_df["target_qty"].sum())
    total_achieved = float(prod["achieved_qty"].sum())
    available = float(prod["available_minutes"].sum())
    summary_production = {
        "totalTargetQty": _number(total_target),
        "totalAchievedQty": _number(total_achieved),
        "totalVarianceQty": _number(total_achieved - total_target),
        "avgEffPercent": clamp_percent(float(prod["produce_minutes"].sum()) / available * 100.0) if available > 0 else 0.0,
        "daysCount": len(days),
        "avgTargetPerDay": _number(total_target / len(days)),
        "avgAchievedPerDay": _number(total_achieved / len(days)),
    }
    totals = insp[QUALITY_SUM_COLUMNS].sum()
    inspected = float(totals["inspected_qty"])

    def percent(part: float) -> float:
        return clamp_percent(part / inspected * 100.0) if inspected > 0 else 0.0

    present = sorted({row["building"] for row in rows if row["building"]}, key=lambda name: (_building_sort_key(name), name))
    return {
        "groupBy": group_by,
        "meta": {
            "buildings": [building] if building else present or list(BUILDING_ORDER),
            "lines": list(LINE_NAMES),
        },
        "summary": {
            "production": summary_production,
            "quality": {
                "totalInspected": _number(inspected),
                "totalPassed": _number(totals["passed_qty"]),
                "totalDefectivePcs": _number(totals["defective_pcs"]),
                "totalDefects": _number(totals["total_defects"]),
                "rftPercent": percent(float(totals["passed_qty"])),
                "defectRatePercent": percent(float(totals["defective_pcs"])),
                "dhuPercent": percent(float(totals["total_defects"])),
            },
        },
        "series": series,
        "rows": rows,
    }
