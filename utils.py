# utils.py
from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Iterable

import pandas as pd

from domain import Settings, Shift, Stats

MONATE = ["Januar", "Februar", "März", "April", "Mai", "Juni", "Juli",
          "August", "September", "Oktober", "November", "Dezember"]
WOCHENTAGE = ["Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"]

_VEHICLE_ID = re.compile(r"71/(\d)")
_VEHICLE_PREFIX = re.compile(r"^RTW Akkon\s*", re.IGNORECASE)
_STATION_PREFIX = re.compile(r"^(HBN|Sendling|Hauptwache|Nordwache|Südwache)\s*", re.IGNORECASE)
VEHICLE_LABEL_MAX = 25
MINUTES_PER_DAY = 24 * 60


# =========================
# Parsing
# =========================
def parse_date(value: str | date | None) -> date | None:
    """'YYYY-MM-DD' (or a date) -> date; anything else -> None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_clock_minutes(value: str | time | None) -> int | None:
    """'HH:MM' (or a time) -> minutes since midnight; anything else -> None."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not value or not isinstance(value, str):
        return None
    try:
        hh, mm = value.strip().split(":")
        h, m = int(hh), int(mm)
    except ValueError:
        return None
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return h * 60 + m


def calculate_duration(start_time: str | time | None, end_time: str | time | None) -> float:
    """Hours between two clock times. Supports overnight shifts; bad input -> 0."""
    start = parse_clock_minutes(start_time)
    end = parse_clock_minutes(end_time)
    if start is None or end is None:
        return 0.0
    if end < start:
        end += MINUTES_PER_DAY  # passed midnight
    return (end - start) / 60


# =========================
# Formatting (de-DE)
# =========================
def month_label(d: date) -> str:
    return f"{MONATE[d.month - 1]} {d.year}"


def format_date_de(value: str | date | None) -> str:
    d = parse_date(value)
    return d.strftime("%d.%m.%Y") if d else ""


def format_date_short(d: date) -> str:
    return d.strftime("%d.%m.%y")


def format_hours(hours: float) -> str:
    return f"{hours:.1f} h"


def format_hours_signed(hours: float) -> str:
    sign = "+" if hours > 0 else ""
    return f"{sign}{hours:.1f} h"


def short_vehicle_label(vehicle: str | None) -> str:
    """Reduces a vehicle name to its radio id ('71/2') or a trimmed short form."""
    name = (vehicle or "").strip()
    if not name:
        return "-"
    match = _VEHICLE_ID.search(name)
    if match:
        return f"71/{match.group(1)}"
    name = _VEHICLE_PREFIX.sub("", name)
    name = _STATION_PREFIX.sub("", name).strip()
    if len(name) > VEHICLE_LABEL_MAX:
        name = name[:22] + "..."
    return name or "-"


# =========================
# DataFrames for the UI
# =========================
def shifts_to_dataframe(shifts: Iterable[Shift], settings: Settings) -> pd.DataFrame:
    rows = []
    for s in shifts:
        d = parse_date(s.date)
        rows.append({
            "Datum": format_date_de(s.date) or s.date,
            "Tag": WOCHENTAGE[d.weekday()] if d else "",
            "Schichtart": settings.type_name(s.type_id),
            "Zeit": f"{s.start_time} - {s.end_time}",
            "Wache": s.station or "-",
            "Fahrzeug": s.vehicle or "-",
            "Funkrufname": s.call_sign or "-",
            "TeampartnerIn": s.partner or "",
            "Stunden": round(calculate_duration(s.start_time, s.end_time), 2),
        })
    return pd.DataFrame(rows)


def chart_dataframe(stats: Stats) -> pd.DataFrame:
    df = pd.DataFrame(
        [{"Tag": p.label, "Stunden": p.hours, "Datum": p.date} for p in stats.chart_series]
    )
    if not df.empty:
        df = df.set_index("Datum")
    return df


def distribution_dataframe(stats: Stats) -> pd.DataFrame:
    rows = []
    for item in stats.distribution_series:
        share = item.value / stats.shift_count * 100 if stats.shift_count else 0.0
        rows.append({"Schichtart": item.name, "Anzahl": item.value, "Anteil (%)": round(share, 1)})
    return pd.DataFrame(rows)
