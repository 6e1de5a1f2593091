"""Quarter labels and date ranges."""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta

from royalty_engine.domain import ReportingPeriod
from royalty_engine.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

_QUARTER_LABEL = re.compile(r"^\s*Q([1-4])\s+(\d{4})\s*$", re.IGNORECASE)


def quarter_of(day: date) -> tuple[int, int]:
    """Return (year, quarter) containing ``day``."""
    return day.year, (day.month - 1) // 3 + 1


def parse_period(
    label: str | None,
    fallback_to_today: bool = False,
    today: date | None = None,
) -> tuple[int, int]:
    """Parse a ``"Q<1-4> <yyyy>"`` period label into (year, quarter).

    Raises:
        InvalidInputError: the label does not match and fallback is disabled.
    """
    match = _QUARTER_LABEL.match(label or "")
    if match:
        return int(match.group(2)), int(match.group(1))

    if not fallback_to_today:
        raise InvalidInputError("period", "expected 'Q<1-4> <yyyy>'", label)

    fallback = quarter_of(today or date.today())
    logger.warning(
        "Unparseable payout period %r; attributing to current quarter Q%s %s",
        label,
        fallback[1],
        fallback[0],
    )
    return fallback


def quarter_bounds(year: int, quarter: int) -> ReportingPeriod:
    """First and last day of a calendar quarter."""
    if quarter not in (1, 2, 3, 4):
        raise InvalidInputError("quarter", "must be 1-4", quarter)
    start = date(year, (quarter - 1) * 3 + 1, 1)
    if quarter == 4:
        end = date(year, 12, 31)
    else:
        end = date(year, quarter * 3 + 1, 1) - timedelta(days=1)
    return ReportingPeriod(start=start, end=end)


def previous_quarter(year: int, quarter: int) -> tuple[int, int]:
    if quarter == 1:
        return year - 1, 4
    return year, quarter - 1


def trailing_quarters(as_of: date, count: int) -> list[tuple[int, int]]:
    """The ``count`` quarters ending with the one containing ``as_of``, oldest first."""
    current = quarter_of(as_of)
    quarters = [current]
    for _ in range(count - 1):
        quarters.append(previous_quarter(*quarters[-1]))
    return list(reversed(quarters))
