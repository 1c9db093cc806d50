from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException

from config.mark_tables import parse_mark_tables
from floor_aggregation import build_floor_compare, build_floor_summary
from line_ranking import InvalidInputError, compute_best_selection


app = FastAPI(title="Best Line Selection API")


def _mark_tables(payload: Dict[str, Any]) -> Optional[Dict[str, tuple]]:
    raw = payload.get("markTables")
    if raw is None:
        return None
    try:
        return parse_mark_tables(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/best-selection")
def best_selection_endpoint(
    payload: Dict[str, Any] = Body(..., example={
        "labelKey": "line",
        "rows": [
            {
                "line": "Line-1",
                "production": {"targetQty": 1000, "achievedQty": 1000, "avgEffPercent": 80},
                "quality": {"totalInspected": 500, "defectRatePercent": 2},
                "manpower": {"total": 40, "absent": 2},
            }
        ],
    })
):
    rows: List[Dict[str, Any]] = payload.get("rows", [])
    label_key = payload.get("labelKey") or "label"
    mark_tables = _mark_tables(payload)

    try:
        selection = compute_best_selection(rows, label_key=label_key, mark_tables=mark_tables)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        **selection,
        "count": len(selection["rows"]),
    }


@app.post("/floor-summary")
def floor_summary_endpoint(payload: Dict[str, Any]):
    mark_tables = _mark_tables(payload)
    try:
        return build_floor_summary(
            payload.get("headers", []),
            payload.get("productions", []),
            payload.get("inspections", []),
            mark_tables=mark_tables,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/floor-compare")
def floor_compare_endpoint(payload: Dict[str, Any]):
    try:
        return build_floor_compare(
            payload.get("headers", []),
            payload.get("productions", []),
            payload.get("inspections", []),
            start=payload.get("from"),
            end=payload.get("to"),
            group_by=payload.get("groupBy") or "line",
            building=payload.get("building"),
            line=payload.get("line"),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# To run locally:
#   uvicorn api_line_ranking:app --reload --port 8080
