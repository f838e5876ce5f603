from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from flask import Response, jsonify, request

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def request_payload() -> dict[str, Any]:
    """JSON body if present, otherwise the submitted form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def clean_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def error_response(errors: list[str] | str, status: int = 400) -> tuple[Response, int]:
    if isinstance(errors, str):
        errors = [errors]
    body: dict[str, Any] = {"error": errors[0] if errors else "Bad request"}
    if len(errors) > 1:
        body["errors"] = errors
    return jsonify(body), status


def parse_sort(allowed: tuple[str, ...], default: str) -> tuple[str, bool]:
    """Read ?sort=&order= from the query string. Returns (column, descending)."""
    sort = (request.args.get("sort") or "").strip()
    if sort not in allowed:
        sort = default
    order = (request.args.get("order") or "asc").strip().lower()
    return sort, order == "desc"
