from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any
from zoneinfo import ZoneInfo

from flask import current_app, request

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value.strip()))


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD; returns None for empty or malformed input."""
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def parse_time(s: str | None) -> str | None:
    """Normalize ``H:MM``/``HH:MM`` to ``HH:MM``; None when malformed."""
    s = (s or "").strip()
    if len(s) == 4 and s[1] == ":":
        s = "0" + s
    return s if TIME_RE.match(s) else None


def time_of(hhmm: str) -> time:
    hours, minutes = hhmm.split(":")
    return time(int(hours), int(minutes))


def parse_int(value: Any, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def money(value: Decimal | float | int | None) -> float:
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("0.01")))


def local_now() -> datetime:
    """Naive wall-clock time in the configured timezone (slots are stored in local time)."""
    tz_name = current_app.config.get("TIMEZONE") or "Africa/Casablanca"
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def pagination_args(default_limit: int = 10, max_limit: int = 100) -> tuple[int, int]:
    page = max(parse_int(request.args.get("page"), 1) or 1, 1)
    limit = parse_int(request.args.get("limit"), default_limit) or default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def pagination_dict(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def safe_next(nxt: str | None) -> str | None:
    """Only allow local paths to avoid open redirects."""
    nxt = (nxt or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//") and "\\" not in nxt:
        return nxt
    return None
