# services.py
from __future__ import annotations

import calendar
import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from domain import (
    AttributeFilters,
    ChartPoint,
    DateRange,
    DistributionItem,
    Settings,
    Shift,
    ShiftCode,
    ShiftType,
    Stats,
    WEEKLY_TARGET_HOURS,
    resolve_type_name,
)
from utils import calculate_duration, format_date_short, month_label, parse_date

logger = logging.getLogger(__name__)

WEEKS_PER_YEAR = 52.14
END_OF_DAY = time(23, 59, 59, 999000)
INVALID_RANGE_LABEL = "Bitte Zeitraum wählen"
NO_DATE_GROUP = "Ohne Datum"

MODES = ("month", "year", "custom")


# =========================
# Date ranges
# =========================
def _month_bounds(d: date) -> tuple[datetime, datetime, int]:
    days = calendar.monthrange(d.year, d.month)[1]
    start = datetime(d.year, d.month, 1)
    end = datetime.combine(date(d.year, d.month, days), END_OF_DAY)
    return start, end, days


def _invalid_range(today: date | None) -> DateRange:
    # Current month keeps downstream filtering working on a real interval.
    start, end, _ = _month_bounds(today or date.today())
    return DateRange(start, end, INVALID_RANGE_LABEL, 0.0, invalid=True)


def resolve_range(
    mode: str,
    reference_date: str | date | None,
    custom_start: str | date | None = None,
    custom_end: str | date | None = None,
    *,
    today: date | None = None,
    weekly_target_hours: float = WEEKLY_TARGET_HOURS,
) -> DateRange:
    """
    Computes the inclusive interval, label and target hours for a filter mode.

    - month: calendar month of `reference_date`, target = days/7 * weekly hours
    - year: calendar year of `reference_date`, target = 52.14 * weekly hours
    - custom: `custom_start`..`custom_end` (end of day), target = ceil(days)/7 * weekly hours

    Never raises: unparseable input yields the current month flagged `invalid`.
    """
    if mode == "custom":
        s = parse_date(custom_start)
        e = parse_date(custom_end)
        if s is None or e is None:
            return _invalid_range(today)
        start = datetime(s.year, s.month, s.day)
        end = datetime.combine(e, END_OF_DAY)
        days = math.ceil(abs(end - start) / timedelta(days=1))
        label = f"{format_date_short(s)} - {format_date_short(e)}"
        return DateRange(start, end, label, days / 7 * weekly_target_hours)

    ref = parse_date(reference_date)
    if ref is None or mode not in MODES:
        logger.debug("Falling back to invalid range for mode=%r reference=%r", mode, reference_date)
        return _invalid_range(today)

    if mode == "month":
        start, end, days = _month_bounds(ref)
        return DateRange(start, end, month_label(ref), days / 7 * weekly_target_hours)

    start = datetime(ref.year, 1, 1)
    end = datetime.combine(date(ref.year, 12, 31), END_OF_DAY)
    return DateRange(start, end, f"{ref.year:04d}", WEEKS_PER_YEAR * weekly_target_hours)


def shift_reference(reference_date: date, mode: str, step: int) -> date:
    """Moves the reference date by `step` months or years (for prev/next navigation)."""
    if mode == "year":
        return date(reference_date.year + step, 1, 1)
    months = reference_date.year * 12 + (reference_date.month - 1) + step
    return date(months // 12, months % 12 + 1, 1)


# =========================
# Filtering
# =========================
def filter_shifts(
    shifts: Iterable[Shift],
    date_range: DateRange,
    filters: AttributeFilters | None = None,
) -> list[Shift]:
    """Shifts inside `date_range` that pass every non-empty attribute criterion."""
    if shifts is None:
        raise TypeError("filter_shifts() needs a shift list, got None")
    filters = filters or AttributeFilters()
    result = []
    for s in shifts:
        d = parse_date(s.date)
        if d is None:
            logger.debug("Skipping shift %s with unparseable date %r", s.id, s.date)
            continue
        moment = datetime(d.year, d.month, d.day)
        if moment < date_range.start or moment > date_range.end:
            continue
        if filters.types and s.type_id not in filters.types:
            continue
        if filters.stations and s.station not in filters.stations:
            continue
        if filters.vehicles and s.vehicle not in filters.vehicles:
            continue
        result.append(s)
    return result


# =========================
# Aggregation
# =========================
def aggregate(
    shifts: Iterable[Shift],
    shift_types: list[ShiftType],
    target_hours: float = 0.0,
) -> Stats:
    """Totals, per-day chart series and per-type distribution for filtered shifts."""
    if shifts is None:
        raise TypeError("aggregate() needs a shift list, got None")
    shifts = list(shifts)
    actual = 0.0
    by_date: dict[str, float] = defaultdict(float)
    by_type: dict[str, int] = defaultdict(int)

    for s in shifts:
        dur = calculate_duration(s.start_time, s.end_time)
        actual += dur
        by_date[s.date] += dur
        by_type[resolve_type_name(s.type_id, shift_types or [])] += 1

    chart = []
    for date_str in sorted(by_date):
        d = parse_date(date_str)
        chart.append(ChartPoint(
            date=date_str,
            hours=by_date[date_str],
            label=f"{d.day:02d}." if d else "??",
        ))

    distribution = [
        DistributionItem(name, count)
        for name, count in sorted(by_type.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    return Stats(
        actual_hours=actual,
        shift_count=len(shifts),
        chart_series=chart,
        distribution_series=distribution,
        target_hours=target_hours,
        delta=actual - target_hours,
    )


# =========================
# Journal
# =========================
def sort_for_journal(shifts: Iterable[Shift]) -> list[Shift]:
    """Newest first by date, then start time."""
    return sorted(shifts, key=lambda s: (s.date or "", s.start_time or ""), reverse=True)


def group_by_month(shifts: Iterable[Shift]) -> list[tuple[str, list[Shift]]]:
    groups: dict[str, list[Shift]] = {}
    undated: list[Shift] = []
    for s in sort_for_journal(shifts):
        d = parse_date(s.date)
        if d is None:
            undated.append(s)
            continue
        groups.setdefault(month_label(d), []).append(s)
    result = list(groups.items())
    if undated:
        result.append((NO_DATE_GROUP, undated))
    return result


def code_for(shift: Shift, settings: Settings) -> ShiftCode | None:
    return next((c for c in settings.shift_codes if c.id == shift.code_id), None)


def exceeds_code_hours(shift: Shift, settings: Settings) -> bool:
    """True when the worked duration is above the shift code's contractual hours."""
    code = code_for(shift, settings)
    return calculate_duration(shift.start_time, shift.end_time) > (code.hours if code else 0.0)


# =========================
# Pipeline
# =========================
@dataclass(frozen=True)
class Analysis:
    date_range: DateRange
    shifts: list[Shift]
    stats: Stats


class ShiftAnalyzer:
    """Business rules for the statistics view: range -> filter -> aggregate."""
    def __init__(self, weekly_target_hours: float = WEEKLY_TARGET_HOURS):
        self.weekly_target_hours = weekly_target_hours

    def resolve_range(self, mode, reference_date, custom_start=None, custom_end=None, today=None) -> DateRange:
        return resolve_range(
            mode, reference_date, custom_start, custom_end,
            today=today, weekly_target_hours=self.weekly_target_hours,
        )

    def analyze(
        self,
        shifts: Iterable[Shift],
        settings: Settings,
        mode: str,
        reference_date: str | date | None,
        custom_start: str | date | None = None,
        custom_end: str | date | None = None,
        filters: AttributeFilters | None = None,
        today: date | None = None,
    ) -> Analysis:
        """Recomputes everything from scratch; safe to call on every repository update."""
        rng = self.resolve_range(mode, reference_date, custom_start, custom_end, today)
        filtered = filter_shifts(shifts, rng, filters)
        stats = aggregate(filtered, settings.shift_types, rng.target_hours)
        return Analysis(date_range=rng, shifts=filtered, stats=stats)
