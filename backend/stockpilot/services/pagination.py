# Overview: Shared offset pagination for list endpoints.

from __future__ import annotations

from flask import current_app, has_app_context

from ..errors import ValidationError


def _limits() -> tuple[int, int]:
    if has_app_context():
        return (
            int(current_app.config.get("DEFAULT_PAGE_SIZE", 10)),
            int(current_app.config.get("MAX_PAGE_SIZE", 100)),
        )
    return 10, 100


def normalize_page_args(page=None, per_page=None) -> tuple[int, int]:
    """
    Parse page / per_page (query-string friendly). Page is 1-based; per_page
    defaults to DEFAULT_PAGE_SIZE and is capped at MAX_PAGE_SIZE.
    """
    default_size, max_size = _limits()
    field_errors: dict[str, list[str]] = {}

    try:
        page = int(page) if page not in (None, "") else 1
    except (TypeError, ValueError):
        field_errors["page"] = ["must be an integer"]
        page = 1
    try:
        per_page = int(per_page) if per_page not in (None, "") else default_size
    except (TypeError, ValueError):
        field_errors["limit"] = ["must be an integer"]
        per_page = default_size

    if field_errors:
        raise ValidationError("Invalid pagination parameters", field_errors=field_errors)

    return max(page, 1), min(max(per_page, 1), max_size)


def paginate(query, *, page=None, per_page=None, serialize=None) -> dict:
    """
    Run `query` for one page.

    Returns {"items", "count", "pagination": {page, per_page, total,
    total_pages, has_next, has_prev}}. The query must already be ordered.
    """
    page, per_page = normalize_page_args(page, per_page)
    serialize = serialize or (lambda row: row.to_dict())

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
