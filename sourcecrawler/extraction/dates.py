"""Publish-date parsing for scraped listings."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Optional

import dateparser

from sourcecrawler.ingestion.post_types import as_utc

logger = logging.getLogger(__name__)

# moment.js tokens -> strptime directives, longest tokens first.
_MOMENT_TOKENS = {
    "YYYY": "%Y",
    "YY": "%y",
    "MMMM": "%B",
    "MMM": "%b",
    "MM": "%m",
    "M": "%m",
    "DD": "%d",
    "Do": "%d",
    "D": "%d",
    "dddd": "%A",
    "ddd": "%a",
    "HH": "%H",
    "H": "%H",
    "hh": "%I",
    "h": "%I",
    "mm": "%M",
    "m": "%M",
    "ss": "%S",
    "s": "%S",
    "A": "%p",
    "a": "%p",
    "ZZ": "%z",
    "Z": "%z",
}
_MOMENT_RE = re.compile(r"\[([^\]]*)\]|" + "|".join(sorted(_MOMENT_TOKENS, key=len, reverse=True)))

_SETTINGS = {
    "TIMEZONE": "UTC",
    "RETURN_AS_TIMEZONE_AWARE": True,
}


def to_strptime_format(fmt: str) -> str:
    """Translate a moment.js format ("DD.MM.YYYY HH:mm") to strptime syntax.

    Formats that already contain "%" directives are returned unchanged.
    """
    if "%" in fmt:
        return fmt

    def _sub(m: re.Match) -> str:
        if m.group(1) is not None:
            return m.group(1).replace("%", "%%")
        return _MOMENT_TOKENS[m.group(0)]

    return _MOMENT_RE.sub(_sub, fmt)


def _language(locale: Optional[str]) -> Optional[str]:
    if not locale:
        return None
    return re.split(r"[-_]", locale.strip())[0].lower() or None


def parse_date(value: Any, date_format: Optional[str] = None, locale: Optional[str] = None) -> Optional[datetime]:
    """Parse scraped date text into an aware UTC datetime, or None."""
    if isinstance(value, datetime):
        return as_utc(value)
    text = " ".join(str(value or "").split())
    if not text:
        return None
    language = _language(locale)
    kwargs = {"settings": dict(_SETTINGS)}
    if date_format:
        kwargs["date_formats"] = [to_strptime_format(date_format)]
    if language:
        kwargs["languages"] = [language]
    try:
        parsed = dateparser.parse(text, **kwargs)
    except Exception as e:
        # dateparser raises assorted errors for unknown languages/formats
        logger.warning("date parse failed for %r (format=%r, locale=%r): %s", text, date_format, locale, e)
        return None
    return as_utc(parsed)
