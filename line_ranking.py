from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd


class InvalidInputError(ValueError):
    """Raised when an aggregate record cannot take part in a ranking run."""


# Excel-style mark tables. Ceilings are inclusive and must be ascending.
AMOUNT_MARKS = (
    {"max_rank": 2, "marks": 25},
    {"max_rank": 5, "marks": 10},
    {"max_rank": 10, "marks": 5},
)
EFFICIENCY_MARKS = (
    {"max_rank": 2, "marks": 10},
    {"max_rank": 5, "marks": 4},
    {"max_rank": 10, "marks": 2},
)
# Absenteeism and rejection rank LOW values first.
ABSENTEEISM_MARKS = (
    {"max_rank": 6, "marks": 15},
    {"max_rank": 9, "marks": 10},
    {"max_rank": math.inf, "marks": 4},
)
REJECTION_MARKS = (
    {"max_rank": 4, "marks": 25},
    {"max_rank": math.inf, "marks": 20},
)

DEFAULT_MARK_TABLES: Dict[str, Sequence[Mapping[str, Any]]] = {
    "amount": AMOUNT_MARKS,
    "efficiency": EFFICIENCY_MARKS,
    "absenteeism": ABSENTEEISM_MARKS,
    "rejection": REJECTION_MARKS,
}

# (table name, metric column, rank direction)
METRICS = (
    ("amount", "amount_hit_rate_percent", "desc"),
    ("efficiency", "efficiency_hit_rate_percent", "desc"),
    ("absenteeism", "absenteeism_percent", "asc"),
    ("rejection", "rejection_percent", "asc"),
)

NORMALIZED_COLUMNS = [
    "label",
    "active",
    "amount_hit_rate_percent",
    "efficiency_hit_rate_percent",
    "absenteeism_percent",
    "rejection_percent",
    "achieved_qty",
    "target_qty",
]

# Place ordering: total marks first, then the tie-break cascade.
PLACEMENT_ORDER = [
    ("total_marks", False),
    ("absenteeism_percent", True),
    ("rejection_percent", True),
    ("efficiency_hit_rate_percent", False),
    ("amount_hit_rate_percent", False),
    ("achieved_qty", False),
    ("label", True),
]


def to_number_or_zero(value: Any) -> float:
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def clamp_percent(value: Any) -> float:
    """Clamp ``value`` into ``[0, 100]``; non-numeric or non-finite input is 0."""
    number = to_number_or_zero(value)
    return max(0.0, min(100.0, number))


def _percent_of(part: float, whole: float) -> float:
    return (part / whole) * 100.0 if whole > 0 else 0.0


def _section(record: Mapping[str, Any], name: str, label: str) -> Mapping[str, Any]:
    section = record.get(name)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise InvalidInputError(f"'{name}' of {label!r} must be a mapping")
    return section


def normalize_aggregates(records: Iterable[Mapping[str, Any]], label_key: str = "label") -> pd.DataFrame:
    """Convert raw per-entity aggregates into bounded percentage metrics.

    Each record carries a label under ``label_key`` plus optional
    ``production`` (``targetQty``, ``achievedQty``, ``avgEffPercent``),
    ``quality`` (``totalInspected``, ``defectRatePercent``) and ``manpower``
    (``total``, ``absent``) sections. Numbers that are missing or not finite
    are read as 0.

    Raises:
        InvalidInputError: ``records`` is not a list of mappings, a label is
            missing or repeated, or a section is not a mapping.
    """
    if records is None or isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        raise InvalidInputError("aggregates must be a list of records")

    rows = []
    seen = set()
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise InvalidInputError(f"aggregate #{index} is not a keyed record")
        raw_label = record.get(label_key)
        label = "" if raw_label is None else str(raw_label).strip()
        if not label:
            raise InvalidInputError(f"aggregate #{index} is missing '{label_key}'")
        if label in seen:
            raise InvalidInputError(f"duplicate {label_key} {label!r}")
        seen.add(label)

        production = _section(record, "production", label)
        quality = _section(record, "quality", label)
        manpower = _section(record, "manpower", label)

        target = to_number_or_zero(production.get("targetQty"))
        achieved = to_number_or_zero(production.get("achievedQty"))
        inspected = to_number_or_zero(quality.get("totalInspected"))
        total_mp = to_number_or_zero(manpower.get("total"))
        absent_mp = to_number_or_zero(manpower.get("absent"))

        rows.append(
            {
                "label": label,
                "active": target > 0 or achieved > 0 or inspected > 0,
                "amount_hit_rate_percent": clamp_percent(_percent_of(achieved, target)),
                "efficiency_hit_rate_percent": clamp_percent(production.get("avgEffPercent")),
                "absenteeism_percent": clamp_percent(_percent_of(absent_mp, total_mp)),
                "rejection_percent": clamp_percent(quality.get("defectRatePercent")),
                "achieved_qty": achieved,
                "target_qty": target,
            }
        )

    df = pd.DataFrame(rows, columns=NORMALIZED_COLUMNS)
    df["active"] = df["active"].astype(bool)
    return df


def dense_ranks(values, direction: str = "desc") -> Dict[Any, int]:
    """Dense-rank ``values`` (a mapping or ``(key, value)`` pairs).

    ``"desc"`` ranks the highest value 1, ``"asc"`` the lowest. Equal values
    share a rank and the next distinct value gets the following rank, so
    ``[50, 50, 30]`` ranks ``[1, 1, 2]``. Non-finite values are left out of
    the result entirely.
    """
    if direction not in ("asc", "desc"):
        raise ValueError(f"direction must be 'asc' or 'desc', not {direction!r}")

    entries = dict(values)
    if not entries:
        return {}

    series = pd.to_numeric(
        pd.Series(list(entries.values()), index=list(entries.keys()), dtype="object"),
        errors="coerce",
    ).astype(float)
    series = series[np.isfinite(series)]
    ranks = series.rank(method="dense", ascending=direction == "asc")
    return {key: int(rank) for key, rank in ranks.items()}


def normalize_mark_rules(rules: Iterable[Mapping[str, Any]]) -> tuple:
    """Validate a mark table and return it as a tuple of ``max_rank``/``marks`` dicts.

    Accepts ``max_rank`` or ``maxRank`` keys; a ``None`` or ``"inf"`` ceiling
    means "every remaining rank".
    """
    normalized = []
    previous = 0.0
    for rule in rules or ():
        if not isinstance(rule, Mapping):
            raise ValueError("mark rules must be mappings")
        ceiling = rule.get("max_rank", rule.get("maxRank"))
        if ceiling is None or str(ceiling).strip().lower() in ("inf", "infinity"):
            ceiling = math.inf
        try:
            ceiling = float(ceiling)
            marks = float(rule["marks"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"invalid mark rule {dict(rule)!r}") from exc
        if not math.isfinite(marks) or not marks.is_integer():
            raise ValueError(f"marks must be a whole number, not {rule['marks']!r}")
        if math.isnan(ceiling) or ceiling <= previous:
            raise ValueError("mark rule ceilings must be strictly ascending")
        previous = ceiling
        normalized.append({"max_rank": ceiling, "marks": int(marks)})
    return tuple(normalized)


def marks_by_rank(rank: Any, rules: Iterable[Mapping[str, Any]]) -> int:
    """Return the marks of the first rule whose ceiling covers ``rank``.

    ``rules`` may use ``max_rank`` or ``maxRank`` ceilings (see
    :func:`normalize_mark_rules`). Rank 0, a negative rank or a missing rank
    means "unranked" and always scores 0, as does a rank beyond every finite
    ceiling.
    """
    rank = to_number_or_zero(rank)
    if rank <= 0:
        return 0
    for rule in normalize_mark_rules(rules):
        if rank <= rule["max_rank"]:
            return int(rule["marks"])
    return 0


def _resolve_tables(mark_tables: Mapping[str, Any] | None) -> Dict[str, tuple]:
    tables = dict(DEFAULT_MARK_TABLES)
    if mark_tables:
        unknown = set(mark_tables) - set(tables)
        if unknown:
            raise ValueError(f"unknown mark tables: {', '.join(sorted(unknown))}")
        tables.update(mark_tables)
    return {name: normalize_mark_rules(rules) for name, rules in tables.items()}


def score_metrics(normalized: pd.DataFrame, mark_tables: Mapping[str, Any] | None = None) -> pd.DataFrame:
    """Attach ``<metric>_marks`` and ``total_marks`` to normalized metrics.

    Only active entities are ranked; inactive ones score 0 everywhere.
    """
    tables = _resolve_tables(mark_tables)
    scored = normalized.copy()
    active = scored[scored["active"]]

    marks_columns = []
    for name, column, direction in METRICS:
        ranks = dense_ranks(zip(active["label"], active[column]), direction)
        rules = tables[name]
        marks_column = f"{name}_marks"
        scored[marks_column] = [
            marks_by_rank(ranks.get(label, 0), rules) if is_active else 0
            for label, is_active in zip(scored["label"], scored["active"])
        ]
        scored[marks_column] = scored[marks_column].astype(int)
        marks_columns.append(marks_column)

    scored["total_marks"] = scored[marks_columns].sum(axis=1).astype(int)
    return scored


def resolve_placement(scored: pd.DataFrame) -> pd.DataFrame:
    """Sort scored entities into their final order and number them from 1."""
    columns = [column for column, _ in PLACEMENT_ORDER]
    ascending = [asc for _, asc in PLACEMENT_ORDER]
    placed = scored.sort_values(by=columns, ascending=ascending, kind="mergesort").reset_index(drop=True)
    placed["place"] = placed.index + 1
    return placed


def _to_result(row) -> Dict[str, Any]:
    return {
        "label": row.label,
        "active": bool(row.active),
        "amountHitRatePercent": float(row.amount_hit_rate_percent),
        "amountMarks": int(row.amount_marks),
        "efficiencyHitRatePercent": float(row.efficiency_hit_rate_percent),
        "efficiencyMarks": int(row.efficiency_marks),
        "absenteeismPercent": float(row.absenteeism_percent),
        "absenteeismMarks": int(row.absenteeism_marks),
        "rejectionPercent": float(row.rejection_percent),
        "rejectionMarks": int(row.rejection_marks),
        "totalMarks": int(row.total_marks),
        "place": int(row.place),
    }


def rank_entities(
    records: Iterable[Mapping[str, Any]],
    *,
    label_key: str = "label",
    mark_tables: Mapping[str, Any] | None = None,
) -> List[Dict[str, Any]]:
    """Normalize, rank, score and place ``records``.

    Returns one JSON-ready dict per record, ordered by ``place``.
    """
    normalized = normalize_aggregates(records, label_key=label_key)
    placed = resolve_placement(score_metrics(normalized, mark_tables))
    return [_to_result(row) for row in placed.itertuples(index=False)]


def compute_best_selection(
    records: Iterable[Mapping[str, Any]],
    *,
    label_key: str = "label",
    mark_tables: Mapping[str, Any] | None = None,
) -> Dict[str, Any]:
    """Wrap :func:`rank_entities` with the label of the winning entity."""
    rows = rank_entities(records, label_key=label_key, mark_tables=mark_tables)
    return {
        "bestLabel": rows[0]["label"] if rows else "",
        "rows": rows,
    }
