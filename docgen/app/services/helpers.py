"""
Formatting helper library exposed to templates.

Every helper is a pure function of its arguments. Template-facing names
(``formatDate``, ``sum``, ...) are part of the template authoring
contract and must stay stable; locale-aware helpers default to the locale
of the current generation and accept an explicit override.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time as dt_time, timezone
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

from babel import Locale, UnknownLocaleError
from babel.dates import format_date, format_datetime, format_time
from babel.numbers import format_currency, format_decimal, format_percent

logger = logging.getLogger(__name__)


FALLBACK_LOCALE = "en_US"


def normalize_locale(language: Optional[str]) -> str:
    """
    Map a BCP 47 tag (``it-IT``) to a Babel identifier (``it_IT``).

    Unknown tags fall back to ``en_US`` with a warning.
    """
    if not language:
        return FALLBACK_LOCALE
    try:
        return str(Locale.parse(language.replace("-", "_")))
    except (ValueError, UnknownLocaleError):
        logger.warning("Unknown locale '%s', using %s", language, FALLBACK_LOCALE)
        return FALLBACK_LOCALE


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as produced by JavaScript clients.
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            pass
    # Unparsable dates render as an empty string instead of failing.
    logger.warning("Cannot interpret %r as a date", value)
    return None


def _fraction_pattern(decimals: int) -> str:
    return "." + "0" * decimals if decimals > 0 else ""


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


# ----------------------------------------------------------------------
# Text helpers
# ----------------------------------------------------------------------

def uppercase(text: Any) -> str:
    return str(text).upper() if text else ""


def lowercase(text: Any) -> str:
    return str(text).lower() if text else ""


def capitalize(text: Any) -> str:
    if not text:
        return ""
    return " ".join(
        word[:1].upper() + word[1:].lower() for word in str(text).split(" ")
    )


def truncate(text: Any, length: int = 100, suffix: str = "...") -> str:
    if not text:
        return ""
    text = str(text)
    if len(text) > length:
        return text[:length] + suffix
    return text


# ----------------------------------------------------------------------
# Conditional helpers
# ----------------------------------------------------------------------

def if_then(condition: Any, true_value: Any, false_value: Any = "") -> Any:
    return true_value if condition else false_value


def is_null_or_empty(value: Any) -> bool:
    return value is None or value == ""


def default_value(value: Any, default: Any = "") -> Any:
    return default if is_null_or_empty(value) else value


# ----------------------------------------------------------------------
# Collection helpers
# ----------------------------------------------------------------------

def total(items: Any, property: Optional[str] = None) -> float:
    if not isinstance(items, (list, tuple)):
        return 0
    if property:
        return sum(
            _to_number(item.get(property)) if isinstance(item, Mapping) else 0
            for item in items
        )
    return sum(_to_number(item) for item in items)


def count(items: Any) -> int:
    return len(items) if isinstance(items, (list, tuple)) else 0


def join(items: Any, separator: str = ", ") -> str:
    if not isinstance(items, (list, tuple)):
        return ""
    return separator.join(str(item) for item in items)


def sort_items(
    items: Any,
    property: Optional[str] = None,
    direction: str = "asc",
) -> list:
    if not isinstance(items, (list, tuple)):
        return []

    # Numbers before text, missing values last; mixed types never raise.
    def key(item: Any) -> tuple:
        value = item.get(property) if property and isinstance(item, Mapping) else item
        if value is None:
            return (2, 0, "")
        if isinstance(value, (int, float)):
            return (0, value, "")
        return (1, 0, str(value))

    return sorted(items, key=key, reverse=direction.lower() != "asc")


def filter_items(items: Any, property: str, value: Any) -> list:
    if not isinstance(items, (list, tuple)):
        return []
    return [
        item
        for item in items
        if isinstance(item, Mapping) and item.get(property) == value
    ]


# ----------------------------------------------------------------------
# Helper table
# ----------------------------------------------------------------------

def build_helpers(
    *,
    locale: str,
    date_format: str,
    datetime_format: str,
    time_format: str,
) -> Mapping[str, Callable[..., Any]]:
    """
    Build the read-only helper table for one generation.

    Date and number helpers close over the generation locale and the
    configured CLDR patterns.
    """

    def format_date_helper(value: Any, format: str = date_format) -> str:
        moment = _as_datetime(value)
        return format_date(moment, format=format, locale=locale) if moment else ""

    def format_datetime_helper(value: Any, format: str = datetime_format) -> str:
        moment = _as_datetime(value)
        return format_datetime(moment, format=format, locale=locale) if moment else ""

    def format_time_helper(value: Any, format: str = time_format) -> str:
        moment = _as_datetime(value)
        if moment is None:
            return ""
        return format_time(
            dt_time(moment.hour, moment.minute, moment.second),
            format=format,
            locale=locale,
        )

    def format_currency_helper(
        amount: Any,
        locale_override: Optional[str] = None,
        currency: str = "EUR",
        decimals: int = 2,
    ) -> str:
        if amount is None or amount == "":
            return ""
        loc = normalize_locale(locale_override) if locale_override else locale
        pattern = Locale.parse(loc).currency_formats["standard"].pattern
        pattern = pattern.split(";")[0].replace(".00", _fraction_pattern(decimals))
        return format_currency(
            _to_number(amount),
            currency,
            format=pattern,
            locale=loc,
            currency_digits=False,
        )

    def format_number_helper(
        number: Any,
        decimals: int = 2,
        locale_override: Optional[str] = None,
    ) -> str:
        if number is None or number == "":
            return ""
        loc = normalize_locale(locale_override) if locale_override else locale
        return format_decimal(
            _to_number(number),
            format="#,##0" + _fraction_pattern(decimals),
            locale=loc,
        )

    def format_percent_helper(
        value: Any,
        decimals: int = 2,
        locale_override: Optional[str] = None,
    ) -> str:
        if value is None or value == "":
            return ""
        loc = normalize_locale(locale_override) if locale_override else locale
        return format_percent(
            _to_number(value) / 100,
            format="#,##0" + _fraction_pattern(decimals) + "%",
            locale=loc,
        )

    return MappingProxyType(
        {
            "formatDate": format_date_helper,
            "formatDateTime": format_datetime_helper,
            "formatTime": format_time_helper,
            "formatCurrency": format_currency_helper,
            "formatNumber": format_number_helper,
            "formatPercent": format_percent_helper,
            "uppercase": uppercase,
            "lowercase": lowercase,
            "capitalize": capitalize,
            "truncate": truncate,
            "ifThen": if_then,
            "isNullOrEmpty": is_null_or_empty,
            "defaultValue": default_value,
            "sum": total,
            "count": count,
            "join": join,
            "sort": sort_items,
            "filter": filter_items,
        }
    )


HELPER_NAMES: frozenset[str] = frozenset(
    build_helpers(
        locale=FALLBACK_LOCALE,
        date_format="",
        datetime_format="",
        time_format="",
    )
)


def helper_collisions(keys: Iterable[str]) -> list[str]:
    """Return the caller keys that shadow a helper name, sorted."""
    return sorted(set(keys) & HELPER_NAMES)
