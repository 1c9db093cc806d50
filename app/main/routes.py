from datetime import date, datetime

from flask import Blueprint, current_app, jsonify, request

from app.db import (
    fetch_hourly_inspections,
    fetch_hourly_productions,
    fetch_target_headers,
)
from floor_aggregation import GROUP_BY_OPTIONS, build_floor_compare, build_floor_summary
from line_ranking import InvalidInputError


main_bp = Blueprint('main', __name__)


def _parse_date(val):
    if not val:
        return None

    if isinstance(val, datetime):
        return val.date()

    if isinstance(val, date):
        return val

    text = str(val).strip()
    if not text:
        return None

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if isinstance(parsed, datetime):
        return parsed.date()

    return parsed


def _error(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def _resolve_date_range(args):
    """Return ``(start, end)`` from ``date`` or a ``from``/``to`` pair."""

    single = args.get('date')
    if single:
        day = _parse_date(single)
        return day, day

    start = _parse_date(args.get('from'))
    end = _parse_date(args.get('to')) or start
    return start, end


@main_bp.route('/api/floor-summary', methods=['GET'])
def floor_summary():
    factory = (request.args.get('factory') or '').strip()
    building = (request.args.get('building') or '').strip()
    start, end = _resolve_date_range(request.args)

    if not factory or start is None or end is None:
        return _error("factory and date (or from/to) are required", 400)
    if end < start:
        return _error("'to' must not be before 'from'", 400)

    headers, error = fetch_target_headers(factory, start, end, building or None)
    if error:
        current_app.logger.error("Target header fetch failed: %s", error)
        return _error(error, 500)

    header_ids = [row.get('id') for row in headers if row.get('id') is not None]
    productions, error = fetch_hourly_productions(factory, start, end, header_ids)
    if error:
        current_app.logger.error("Hourly production fetch failed: %s", error)
        return _error(error, 500)

    inspections, error = fetch_hourly_inspections(factory, start, end, building or None)
    if error:
        current_app.logger.error("Hourly inspection fetch failed: %s", error)
        return _error(error, 500)

    try:
        payload = build_floor_summary(
            headers,
            productions,
            inspections,
            mark_tables=current_app.config.get('MARK_TABLES'),
        )
    except InvalidInputError as exc:
        current_app.logger.error("Best selection failed for %s: %s", factory, exc)
        return _error(str(exc), 500)

    return jsonify(
        {
            "success": True,
            "factory": factory,
            "building": building,
            "from": start.isoformat(),
            "to": end.isoformat(),
            **payload,
        }
    )


@main_bp.route('/api/floor-compare', methods=['GET'])
def floor_compare():
    factory = (request.args.get('factory') or '').strip()
    building = (request.args.get('building') or '').strip()
    line = (request.args.get('line') or '').strip() or 'ALL'
    group_by = (request.args.get('groupBy') or 'line').strip().lower()
    start = _parse_date(request.args.get('from'))
    end = _parse_date(request.args.get('to'))

    if not factory or start is None or end is None:
        return _error("factory, from and to are required", 400)
    if end < start:
        return _error("'to' must not be before 'from'", 400)
    if group_by not in GROUP_BY_OPTIONS:
        return _error(f"groupBy must be one of {', '.join(GROUP_BY_OPTIONS)}", 400)

    line_filter = None if line.upper() == 'ALL' else line

    headers, error = fetch_target_headers(factory, start, end, building or None, line=line_filter)
    if error:
        current_app.logger.error("Target header fetch failed: %s", error)
        return _error(error, 500)

    header_ids = [row.get('id') for row in headers if row.get('id') is not None]
    productions, error = fetch_hourly_productions(factory, start, end, header_ids)
    if error:
        current_app.logger.error("Hourly production fetch failed: %s", error)
        return _error(error, 500)

    inspections, error = fetch_hourly_inspections(factory, start, end, building or None, line=line_filter)
    if error:
        current_app.logger.error("Hourly inspection fetch failed: %s", error)
        return _error(error, 500)

    try:
        payload = build_floor_compare(
            headers,
            productions,
            inspections,
            start=start,
            end=end,
            group_by=group_by,
            building=building or None,
            line=line_filter,
        )
    except InvalidInputError as exc:
        current_app.logger.error("Floor compare failed for %s: %s", factory, exc)
        return _error(str(exc), 500)

    return jsonify(
        {
            "success": True,
            "params": {
                "factory": factory,
                "building": building,
                "from": start.isoformat(),
                "to": end.isoformat(),
                "groupBy": group_by,
                "line": line,
            },
            **payload,
        }
    )
