"""
Pytest configuration and shared fixtures for the Schichttagebuch tests.

Shifts, settings and repositories are built in memory or under `tmp_path`;
nothing touches the real data directory.
"""

from datetime import date

import pytest

from domain import Settings, Shift, ShiftType
from repository import (
    JsonDocumentStore,
    LocalSettingsRepository,
    LocalShiftRepository,
    SqlSettingsRepository,
    SqlShiftRepository,
    init_database,
)


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def make_shift(shift_date="2024-03-01", start="06:00", end="18:00", **kwargs):
    """Create and return a Shift with a fixed id derived from date and start."""
    kwargs.setdefault("id", f"{shift_date}-{start}")
    kwargs.setdefault("type_id", "t1")
    return Shift(date=shift_date, start_time=start, end_time=end, **kwargs)


# =============================================================================
# DOMAIN FIXTURES
# =============================================================================


@pytest.fixture
def shift_types():
    return [ShiftType("t1", "Tagdienst"), ShiftType("t2", "Nachtdienst")]


@pytest.fixture
def settings():
    return Settings.defaults()


@pytest.fixture
def march_shifts():
    """The two-shift March 2024 scenario: 12 h day shift plus 8 h night shift."""
    return [
        make_shift("2024-03-01", "06:00", "18:00", type_id="t1"),
        make_shift("2024-03-02", "22:00", "06:00", type_id="t1"),
    ]


@pytest.fixture
def mixed_shifts():
    """Shifts across months, stations and vehicles, plus broken records."""
    return [
        make_shift("2024-03-01", "07:00", "19:00", type_id="t1", station="Hauptwache", vehicle="R-RTW-1"),
        make_shift("2024-03-05", "19:00", "07:00", type_id="t2", station="Nordwache", vehicle="R-NEF-1"),
        make_shift("2024-03-05", "07:00", "12:00", type_id="t1", station="Nordwache", vehicle="R-RTW-1"),
        make_shift("2024-03-31", "08:00", "16:00", type_id="gone", station="Südwache", vehicle="R-KdoW-1"),
        make_shift("2024-04-01", "07:00", "19:00", type_id="t1", station="Hauptwache", vehicle="R-RTW-1"),
        make_shift("2024-02-29", "07:00", "19:00", type_id="t1", station="Hauptwache", vehicle="R-RTW-1"),
        make_shift("kaputt", "07:00", "19:00", id="broken-date"),
        make_shift("", "07:00", "19:00", id="empty-date"),
    ]


@pytest.fixture
def reference_date():
    return date(2024, 3, 15)


# =============================================================================
# REPOSITORY FIXTURES
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    return init_database(f"sqlite:///{(tmp_path / 'test.db').as_posix()}")


@pytest.fixture
def sql_shift_repo(engine):
    return SqlShiftRepository(engine, "anna")


@pytest.fixture
def sql_settings_repo(engine):
    return SqlSettingsRepository(engine, "anna")


@pytest.fixture
def json_store(tmp_path):
    return JsonDocumentStore(tmp_path / "schicht_app_v1.json")


@pytest.fixture
def local_shift_repo(json_store):
    return LocalShiftRepository(json_store)


@pytest.fixture
def local_settings_repo(json_store):
    return LocalSettingsRepository(json_store)
