# domain.py
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

UNKNOWN_TYPE_NAME = "Unbekannt"
WEEKLY_TARGET_HOURS = 7.8

# Settings categories holding {id, ...} objects; the rest are plain string lists.
OBJECT_CATEGORIES = ("shiftTypes", "shiftCodes")
STRING_CATEGORIES = ("vehicles", "callSigns", "stations")


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Shift:
    """One worked duty period as entered by the user."""
    id: str
    date: str
    start_time: str
    end_time: str
    type_id: str | None = None
    code_id: str | None = None
    station: str = ""
    vehicle: str = ""
    call_sign: str = ""
    partner: str = ""
    timestamp: int = 0

    @classmethod
    def new(cls, **fields: Any) -> "Shift":
        """Creates a shift with a fresh id and creation timestamp (epoch ms)."""
        return cls(id=new_id(), timestamp=int(time.time() * 1000), **fields)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Shift":
        return cls(
            id=str(data.get("id") or ""),
            date=data.get("date") or "",
            start_time=data.get("startTime") or "",
            end_time=data.get("endTime") or "",
            type_id=data.get("typeId") or None,
            code_id=data.get("codeId") or None,
            station=data.get("station") or "",
            vehicle=data.get("vehicle") or "",
            call_sign=data.get("callSign") or "",
            partner=data.get("partner") or "",
            timestamp=int(data.get("timestamp") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "typeId": self.type_id,
            "codeId": self.code_id,
            "station": self.station,
            "vehicle": self.vehicle,
            "callSign": self.call_sign,
            "partner": self.partner,
            "timestamp": self.timestamp,
        }


@dataclass
class ShiftType:
    id: str
    name: str


@dataclass
class ShiftCode:
    """Short code with its contractual hours (informational only)."""
    id: str
    code: str
    hours: float


@dataclass
class Settings:
    shift_types: list[ShiftType] = field(default_factory=list)
    shift_codes: list[ShiftCode] = field(default_factory=list)
    vehicles: list[str] = field(default_factory=list)
    call_signs: list[str] = field(default_factory=list)
    stations: list[str] = field(default_factory=list)

    @classmethod
    def defaults(cls) -> "Settings":
        return cls(
            shift_types=[
                ShiftType("t1", "Tagdienst"),
                ShiftType("t2", "Nachtdienst"),
                ShiftType("t3", "Zwischendienst"),
            ],
            shift_codes=[
                ShiftCode("c1", "T", 12.0),
                ShiftCode("c2", "N", 12.0),
                ShiftCode("c3", "K", 8.0),
            ],
            vehicles=["R-RTW-1", "R-NEF-1", "R-KdoW-1"],
            call_signs=["Florian 1/83/1", "Florian 1/76/1", "Florian 1/10/1"],
            stations=["Hauptwache", "Nordwache", "Südwache"],
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        return cls(
            shift_types=[ShiftType(str(t["id"]), t.get("name", "")) for t in data.get("shiftTypes", [])],
            shift_codes=[
                ShiftCode(str(c["id"]), c.get("code", ""), float(c.get("hours") or 0.0))
                for c in data.get("shiftCodes", [])
            ],
            vehicles=list(data.get("vehicles", [])),
            call_signs=list(data.get("callSigns", [])),
            stations=list(data.get("stations", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "shiftTypes": [{"id": t.id, "name": t.name} for t in self.shift_types],
            "shiftCodes": [{"id": c.id, "code": c.code, "hours": c.hours} for c in self.shift_codes],
            "vehicles": list(self.vehicles),
            "callSigns": list(self.call_signs),
            "stations": list(self.stations),
        }

    def type_name(self, type_id: str | None) -> str:
        return resolve_type_name(type_id, self.shift_types)

    def with_item_added(self, category: str, item: Any) -> "Settings":
        """
        Returns a copy with `item` appended to `category`.

        Object categories accept a dict (or ShiftType/ShiftCode); a missing id is generated.
        Entries whose id (objects) or value (strings) already exist are not added twice.
        """
        data = self.to_dict()
        items = data[_check_category(category)]
        if category in OBJECT_CATEGORIES:
            obj = dict(item) if isinstance(item, dict) else dict(vars(item))
            obj["id"] = obj.get("id") or new_id()
            if any(existing["id"] == obj["id"] for existing in items):
                return self
            items.append(obj)
        else:
            value = str(item).strip()
            if not value or value in items:
                return self
            items.append(value)
        return Settings.from_dict(data)

    def with_item_removed(self, category: str, key: str) -> "Settings":
        """Drops entries by id (object categories) or by value (string categories)."""
        data = self.to_dict()
        items = data[_check_category(category)]
        if category in OBJECT_CATEGORIES:
            data[category] = [i for i in items if i["id"] != key]
        else:
            data[category] = [i for i in items if i != key]
        return Settings.from_dict(data)


def _check_category(category: str) -> str:
    if category not in OBJECT_CATEGORIES + STRING_CATEGORIES:
        raise KeyError(f"Unknown settings category: {category!r}")
    return category


def resolve_type_name(type_id: str | None, shift_types: list[ShiftType]) -> str:
    for t in shift_types:
        if t.id == type_id and t.name:
            return t.name
    return UNKNOWN_TYPE_NAME


@dataclass(frozen=True)
class AttributeFilters:
    """Optional criteria; an empty set means no restriction."""
    types: frozenset[str] = frozenset()
    stations: frozenset[str] = frozenset()
    vehicles: frozenset[str] = frozenset()

    @classmethod
    def of(cls, types=(), stations=(), vehicles=()) -> "AttributeFilters":
        return cls(frozenset(types), frozenset(stations), frozenset(vehicles))


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime
    label: str
    target_hours: float
    invalid: bool = False


@dataclass(frozen=True)
class ChartPoint:
    date: str
    hours: float
    label: str


@dataclass(frozen=True)
class DistributionItem:
    name: str
    value: int


@dataclass(frozen=True)
class Stats:
    actual_hours: float
    shift_count: int
    chart_series: list[ChartPoint]
    distribution_series: list[DistributionItem]
    target_hours: float = 0.0
    delta: float = 0.0


@dataclass
class ReportData:
    """Everything the PDF exporter needs, already computed."""
    label: str
    stats: Stats
    delta: float
    target_hours: float
    shifts: list[Shift]
    shift_types: list[ShiftType]
