# repository.py
from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, List

from sqlalchemy import JSON, Column, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from domain import Settings, Shift

logger = logging.getLogger(__name__)

ShiftListener = Callable[[List[Shift]], None]


class RepositoryError(RuntimeError):
    """The backing store rejected a read or write."""


# =========================
# Interfaces
# =========================
class ShiftRepository(ABC):
    """Per-user shift list. Subscribers get the full list after every change."""

    def __init__(self) -> None:
        self._listeners: list[ShiftListener] = []

    @abstractmethod
    def list(self) -> List[Shift]: ...

    @abstractmethod
    def _insert(self, shift: Shift) -> None: ...

    @abstractmethod
    def _delete(self, shift_id: str) -> bool: ...

    def add(self, shift: Shift) -> None:
        self._insert(shift)
        logger.info("Shift %s on %s saved", shift.id, shift.date)
        self._notify()

    def remove(self, shift_id: str) -> None:
        if self._delete(shift_id):
            logger.info("Shift %s deleted", shift_id)
        else:
            logger.warning("Shift %s not found, nothing deleted", shift_id)
        self._notify()

    def subscribe(self, callback: ShiftListener) -> Callable[[], None]:
        """Registers `callback`; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        # The write is already committed here; errors are logged, not raised.
        if not self._listeners:
            return
        try:
            shifts = self.list()
        except RepositoryError:
            logger.exception("Reloading shifts for subscribers failed")
            return
        for callback in list(self._listeners):
            try:
                callback(shifts)
            except Exception:
                logger.exception("Shift subscriber %r failed", callback)


class SettingsRepository(ABC):
    """Single settings record; created with defaults on first use."""

    @abstractmethod
    def get(self) -> Settings: ...

    @abstractmethod
    def _store(self, settings: Settings) -> None: ...

    def add_item(self, category: str, item: Any) -> Settings:
        updated = self.get().with_item_added(category, item)
        self._store(updated)
        logger.info("Settings item added to %s", category)
        return updated

    def remove_item(self, category: str, key: str) -> Settings:
        updated = self.get().with_item_removed(category, key)
        self._store(updated)
        logger.info("Settings item %r removed from %s", key, category)
        return updated


# =========================
# SQL backend (SQLite locally, Postgres in the cloud)
# =========================
class ShiftDB(SQLModel, table=True):
    __tablename__ = "shifts"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    date: str = Field(index=True)
    start_time: str
    end_time: str
    type_id: str | None = None
    code_id: str | None = None
    station: str = ""
    vehicle: str = ""
    call_sign: str = ""
    partner: str = ""
    timestamp: int = 0


class SettingsDB(SQLModel, table=True):
    __tablename__ = "settings"

    user_id: str = Field(primary_key=True)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))


def build_engine(db_url: str, echo: bool = False):
    is_sqlite = db_url.startswith("sqlite")
    kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
        "connect_args": {},
    }
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # Serverless PG: no local pool, connect timeout
        kwargs["poolclass"] = NullPool
        kwargs["connect_args"] = {"connect_timeout": 10}
        if "sslmode=" not in db_url:
            db_url += ("&" if "?" in db_url else "?") + "sslmode=require"
    return create_engine(db_url, **kwargs)


def init_database(db_url: str, echo: bool = False):
    """Builds the engine, checks Postgres connectivity (fail fast) and creates tables."""
    engine = build_engine(db_url, echo=echo)
    try:
        if not db_url.startswith("sqlite"):
            with engine.connect() as conn:
                conn.execute(text("select 1"))
        SQLModel.metadata.create_all(engine)
    except SQLAlchemyError as e:
        raise RepositoryError(f"Datenbank nicht erreichbar: {e}") from e
    return engine


def _row_to_shift(r: ShiftDB) -> Shift:
    return Shift(
        id=r.id,
        date=r.date,
        start_time=r.start_time,
        end_time=r.end_time,
        type_id=r.type_id,
        code_id=r.code_id,
        station=r.station,
        vehicle=r.vehicle,
        call_sign=r.call_sign,
        partner=r.partner,
        timestamp=r.timestamp,
    )


class SqlShiftRepository(ShiftRepository):
    def __init__(self, engine, user_id: str):
        super().__init__()
        self.engine = engine
        self.user_id = user_id

    def list(self) -> List[Shift]:
        try:
            with Session(self.engine) as session:
                rows = session.exec(
                    select(ShiftDB)
                    .where(ShiftDB.user_id == self.user_id)
                    .order_by(col(ShiftDB.date).desc(), col(ShiftDB.timestamp).desc())
                ).all()
                return [_row_to_shift(r) for r in rows]
        except SQLAlchemyError as e:
            logger.exception("Loading shifts for %s failed", self.user_id)
            raise RepositoryError(f"Schichten konnten nicht geladen werden: {e}") from e

    def _insert(self, shift: Shift) -> None:
        try:
            with Session(self.engine) as session:
                session.add(ShiftDB(user_id=self.user_id, **vars(shift)))
                session.commit()
        except SQLAlchemyError as e:
            logger.exception("Saving shift %s failed", shift.id)
            raise RepositoryError(f"Schicht konnte nicht gespeichert werden: {e}") from e

    def _delete(self, shift_id: str) -> bool:
        try:
            with Session(self.engine) as session:
                row = session.get(ShiftDB, shift_id)
                if row is None or row.user_id != self.user_id:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as e:
            logger.exception("Deleting shift %s failed", shift_id)
            raise RepositoryError(f"Schicht konnte nicht gelöscht werden: {e}") from e


class SqlSettingsRepository(SettingsRepository):
    def __init__(self, engine, user_id: str):
        self.engine = engine
        self.user_id = user_id

    def get(self) -> Settings:
        try:
            with Session(self.engine) as session:
                row = session.get(SettingsDB, self.user_id)
                if row is None:
                    defaults = Settings.defaults()
                    session.add(SettingsDB(user_id=self.user_id, data=defaults.to_dict()))
                    session.commit()
                    logger.info("Default settings created for %s", self.user_id)
                    return defaults
                return Settings.from_dict(row.data or {})
        except SQLAlchemyError as e:
            logger.exception("Loading settings for %s failed", self.user_id)
            raise RepositoryError(f"Einstellungen konnten nicht geladen werden: {e}") from e

    def _store(self, settings: Settings) -> None:
        try:
            with Session(self.engine) as session:
                row = session.get(SettingsDB, self.user_id) or SettingsDB(user_id=self.user_id)
                row.data = settings.to_dict()
                session.add(row)
                session.commit()
        except SQLAlchemyError as e:
            logger.exception("Saving settings for %s failed", self.user_id)
            raise RepositoryError(f"Einstellungen konnten nicht gespeichert werden: {e}") from e


# =========================
# Local backend (one JSON document per installation)
# =========================
class JsonDocumentStore:
    """{"shifts": [...], "settings": {...}} kept in a single file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"shifts": [], "settings": Settings.defaults().to_dict()}
        try:
            doc = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Cannot read %s: %s", self.path, e)
            raise RepositoryError(f"Lokale Daten konnten nicht gelesen werden: {e}") from e
        if not isinstance(doc, dict):
            logger.error("Unexpected document in %s: %s", self.path, type(doc).__name__)
            raise RepositoryError("Lokale Daten haben ein unerwartetes Format.")
        if doc.get("shifts") is None:
            doc["shifts"] = []
        if doc.get("settings") is None:
            doc["settings"] = Settings.defaults().to_dict()
        shifts_ok = isinstance(doc["shifts"], list) and all(isinstance(d, dict) for d in doc["shifts"])
        if not shifts_ok or not isinstance(doc["settings"], dict):
            logger.error("Unexpected shifts/settings layout in %s", self.path)
            raise RepositoryError("Lokale Daten haben ein unerwartetes Format.")
        return doc

    def save(self, doc: dict[str, Any]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("Cannot write %s: %s", self.path, e)
            raise RepositoryError(f"Lokale Daten konnten nicht gespeichert werden: {e}") from e


class LocalShiftRepository(ShiftRepository):
    def __init__(self, store: JsonDocumentStore):
        super().__init__()
        self.store = store

    def list(self) -> List[Shift]:
        return [Shift.from_dict(d) for d in self.store.load()["shifts"]]

    def _insert(self, shift: Shift) -> None:
        doc = self.store.load()
        doc["shifts"] = [shift.to_dict()] + doc["shifts"]  # newest first
        self.store.save(doc)

    def _delete(self, shift_id: str) -> bool:
        doc = self.store.load()
        kept = [d for d in doc["shifts"] if d.get("id") != shift_id]
        if len(kept) == len(doc["shifts"]):
            return False
        doc["shifts"] = kept
        self.store.save(doc)
        return True


class LocalSettingsRepository(SettingsRepository):
    def __init__(self, store: JsonDocumentStore):
        self.store = store

    def get(self) -> Settings:
        data = self.store.load()["settings"]
        try:
            return Settings.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Unreadable settings in %s: %r", self.store.path, e)
            raise RepositoryError(f"Lokale Einstellungen sind beschädigt: {e}") from e

    def _store(self, settings: Settings) -> None:
        doc = self.store.load()
        doc["settings"] = settings.to_dict()
        self.store.save(doc)


def open_repositories(config, user_id: str, engine=None) -> tuple[ShiftRepository, SettingsRepository]:
    """Picks the backend named by `config.storage_backend`."""
    if config.storage_backend == "local":
        store = JsonDocumentStore(config.local_store_path)
        logger.debug("Using local store %s", store.path)
        return LocalShiftRepository(store), LocalSettingsRepository(store)
    engine = engine or init_database(config.database_url)
    return SqlShiftRepository(engine, user_id), SqlSettingsRepository(engine, user_id)


__all__ = [
    "RepositoryError", "ShiftRepository", "SettingsRepository",
    "ShiftDB", "SettingsDB", "build_engine", "init_database",
    "SqlShiftRepository", "SqlSettingsRepository",
    "JsonDocumentStore", "LocalShiftRepository", "LocalSettingsRepository",
    "open_repositories",
]
