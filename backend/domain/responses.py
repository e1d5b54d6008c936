"""
Response envelope helpers.

- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error:   { "success": false, "error": { "code", "message", "details" } }
  (built by the exception handlers in main.py)
"""
from typing import Any


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def error_response(code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
    }


def paginated_response(items: list[Any], *, limit: int, offset: int = 0, total: int | None = None) -> dict[str, Any]:
    """Wrap one limit/offset page; meta.hasMore tells clients whether to fetch on."""
    if total is None:
        total = len(items)
    return success_response(
        data=items,
        meta={
            "limit": limit,
            "offset": offset,
            "total": total,
            "hasMore": (offset + limit) < total,
        },
    )
