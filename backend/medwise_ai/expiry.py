from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from typing import Any

from storage.time_utils import utc_now

EXPIRED_REASONING = "Medicine has expired. Please dispose of it safely according to local guidelines."
DONATE_REASONING = (
    "Medicine is within expiry date and in good condition. "
    "Consider donating to local pharmacy or healthcare center."
)

_MONTHS = {name.lower(): index for index, name in enumerate(calendar.month_abbr) if name}

_ISO_DATE_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})$")
_DAY_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})$")
_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})[-/.](\d{2}|\d{4})$")
_NAMED_MONTH_RE = re.compile(r"^([A-Za-z]{3,9})[\s\-/.,]*(\d{2}|\d{4})$")


def _end_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _full_year(raw: str) -> int:
    year = int(raw)
    return 2000 + year if len(raw) == 2 else year


def parse_expiry_date(value: Any) -> date | None:
    """Parse the expiry formats seen on packaging and in model output.

    Month-only expiries (``05/2026``, ``MAY 26``, ``2026-05``) resolve to the
    last day of that month. Numeric day-first dates (``31/12/2025``) are read
    day/month/year.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        return None
    text = re.sub(r"^(exp(iry)?|use\s+by|best\s+before)[\s.:]*", "", text, flags=re.IGNORECASE).strip()

    try:
        match = _ISO_DATE_RE.match(text)
        if match:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        match = _YEAR_MONTH_RE.match(text)
        if match:
            return _end_of_month(int(match.group(1)), int(match.group(2)))
        match = _DAY_MONTH_YEAR_RE.match(text)
        if match:
            return date(int(match.group(3)), int(match.group(2)), int(match.group(1)))
        match = _MONTH_YEAR_RE.match(text)
        if match:
            return _end_of_month(_full_year(match.group(2)), int(match.group(1)))
        match = _NAMED_MONTH_RE.match(text)
        if match:
            month = _MONTHS.get(match.group(1)[:3].lower())
            if month:
                return _end_of_month(_full_year(match.group(2)), month)
    except ValueError:
        return None
    return None


def is_expired(expiry: date, today: date | None = None) -> bool:
    return expiry < (today or utc_now().date())


def apply_strip_expiry_override(parsed: dict[str, Any], today: date | None = None) -> dict[str, Any]:
    result = dict(parsed)
    expiry = parse_expiry_date(result.get("expiryDate"))
    if expiry is None:
        return result
    result["isExpired"] = is_expired(expiry, today)
    if result["isExpired"]:
        result["recommendation"] = "dispose"
        result["reasoning"] = EXPIRED_REASONING
    elif not result.get("recommendation") or result.get("recommendation") == "keep":
        result["recommendation"] = "donate"
        result["reasoning"] = DONATE_REASONING
    return result


def apply_disposal_expiry_override(
    recommendation: dict[str, Any],
    medicine_info: dict[str, Any],
    today: date | None = None,
) -> dict[str, Any]:
    result = dict(recommendation)
    expiry = parse_expiry_date(medicine_info.get("expiryDate"))
    if expiry is None:
        result.setdefault("isExpired", None)
        return result
    result["isExpired"] = is_expired(expiry, today)
    if result["isExpired"]:
        result["recommendation"] = "dispose"
        result["reasoning"] = EXPIRED_REASONING
    return result
