"""Response error extraction for load test observability.

Parses payments API error responses into human-readable messages.
Handles two response shapes:

- Domain and request validation errors: {"error": "msg", "code": "...", "details": {"errors": [...]}}
- FastAPI HTTPException: {"detail": "msg"}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a human-readable error message from an API error response.

    Returns a compact string suitable for Locust failure messages and log lines.
    Gracefully handles unparseable bodies and missing fields.
    """
    try:
        body = response.json()
    except ValueError:
        # Not JSON, return raw text, truncated
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    if not isinstance(body, dict):
        return str(body)[:300]

    if "error" in body:
        message = str(body["error"])
        if body.get("code"):
            message = f"[{body['code']}] {message}"
        field_errors = (body.get("details") or {}).get("errors") or []
        if field_errors:
            message += ": " + " | ".join(f"{err.get('field')}: {err.get('message')}" for err in field_errors)
        return message

    if "detail" in body:
        return str(body["detail"])

    # Unknown shape, stringify and truncate
    return str(body)[:300]
