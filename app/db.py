from datetime import date, datetime

from flask import current_app

from config.supabase_schema import column_name, from_supabase_row, table_name

# Supabase caps a single response at 1,000 rows.
PAGE_SIZE = 1000


def _get_client():
    """Return the configured Supabase client."""
    return current_app.config["SUPABASE"]


def _normalize_date_for_query(value: date | datetime | str | None) -> str | None:
    """Return an ISO formatted date string for Supabase filters."""

    if not value:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _fetch_paginated_rows(
    table: str,
    apply_filters,
    *,
    order_column: str | None = "id",
    page_size: int = PAGE_SIZE,
) -> list[dict]:
    """Fetch every row of ``table`` matching ``apply_filters``.

    ``apply_filters`` receives a fresh ``select("*")`` query and returns it
    with the caller's filters applied. Pages of ``page_size`` rows are read
    with ``range`` until a short page comes back, and column names are mapped
    back to their identifiers.
    """

    if page_size <= 0:
        raise ValueError("page_size must be greater than zero")

    supabase = _get_client()
    rows: list[dict] = []
    offset = 0

    while True:
        query = apply_filters(supabase.table(table_name(table)).select("*"))
        if order_column:
            query = query.order(column_name(table, order_column))
        query = query.range(offset, offset + page_size - 1)

        response = query.execute()
        batch = getattr(response, "data", None) or []
        rows.extend(batch)

        if len(batch) < page_size:
            break
        offset += page_size

    return [from_supabase_row(table, row) for row in rows if isinstance(row, dict)]


def fetch_target_headers(
    factory: str,
    start_date: date | datetime | str,
    end_date: date | datetime | str | None = None,
    building: str | None = None,
    line: str | None = None,
):
    """Retrieve the target headers of ``factory`` between two dates.

    Args:
        factory: Factory code, e.g. ``K-2``.
        start_date: First production day (inclusive).
        end_date: Last production day (inclusive); defaults to ``start_date``.
        building: Optional ``assigned_building`` filter.
        line: Optional ``line`` filter.

    Returns:
        tuple[list | None, str | None]: (data, error)
    """
    start_value = _normalize_date_for_query(start_date)
    end_value = _normalize_date_for_query(end_date) or start_value
    date_column = column_name("target_headers", "date")

    def apply_filters(query):
        query = (
            query.eq(column_name("target_headers", "factory"), factory)
            .gte(date_column, start_value)
            .lte(date_column, end_value)
        )
        if building:
            query = query.eq(column_name("target_headers", "assigned_building"), building)
        if line:
            query = query.eq(column_name("target_headers", "line"), line)
        return query

    try:
        return _fetch_paginated_rows("target_headers", apply_filters), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch target headers: {exc}"


def fetch_hourly_productions(
    factory: str,
    start_date: date | datetime | str,
    end_date: date | datetime | str | None = None,
    header_ids: list | None = None,
):
    """Retrieve hourly production entries recorded against ``header_ids``.

    Returns:
        tuple[list | None, str | None]: (data, error)
    """
    if not header_ids:
        return [], None

    start_value = _normalize_date_for_query(start_date)
    end_value = _normalize_date_for_query(end_date) or start_value
    date_column = column_name("hourly_productions", "production_date")

    def apply_filters(query):
        return (
            query.eq(column_name("hourly_productions", "factory"), factory)
            .gte(date_column, start_value)
            .lte(date_column, end_value)
            .in_(column_name("hourly_productions", "header_id"), list(header_ids))
        )

    try:
        return _fetch_paginated_rows("hourly_productions", apply_filters), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch hourly production: {exc}"


def fetch_hourly_inspections(
    factory: str,
    start_date: date | datetime | str,
    end_date: date | datetime | str | None = None,
    building: str | None = None,
    line: str | None = None,
):
    """Retrieve hourly end-line inspection entries of ``factory``.

    Returns:
        tuple[list | None, str | None]: (data, error)
    """
    start_value = _normalize_date_for_query(start_date)
    end_value = _normalize_date_for_query(end_date) or start_value
    date_column = column_name("hourly_inspections", "report_date")
    # report_date holds a timestamp; cover the whole last day.
    end_bound = f"{end_value}T23:59:59.999"

    def apply_filters(query):
        query = (
            query.eq(column_name("hourly_inspections", "factory"), factory)
            .gte(date_column, start_value)
            .lte(date_column, end_bound)
        )
        if building:
            query = query.eq(column_name("hourly_inspections", "building"), building)
        if line:
            query = query.eq(column_name("hourly_inspections", "line"), line)
        return query

    try:
        return _fetch_paginated_rows("hourly_inspections", apply_filters), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch hourly inspections: {exc}"
