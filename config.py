# config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from domain import WEEKLY_TARGET_HOURS

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
BACKENDS = ("sql", "local")


def _pick_data_dir() -> Path:
    candidates = []
    env = os.getenv("DATA_DIR")
    if env:
        candidates.append(Path(env))
    candidates += [Path("/data"), Path.cwd() / "data"]

    for p in candidates:
        try:
            p.mkdir(parents=True, exist_ok=True)
            t = p / ".rwtest"
            t.write_text("ok")
            t.unlink(missing_ok=True)
            return p
        except OSError:
            continue
    return Path.cwd()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path
    database_url: str
    storage_backend: str = "sql"
    weekly_target_hours: float = WEEKLY_TARGET_HOURS
    log_level: str = "INFO"
    default_user: str = ""

    @property
    def local_store_path(self) -> Path:
        return self.data_dir / "schicht_app_v1.json"

    @classmethod
    def from_env(cls) -> "AppConfig":
        data_dir = _pick_data_dir()
        default_sqlite = f"sqlite:///{(data_dir / 'schichttagebuch.db').as_posix()}"
        backend = os.getenv("STORAGE_BACKEND", "sql").strip().lower()
        if backend not in BACKENDS:
            logger.warning("Unknown STORAGE_BACKEND=%r, using 'sql'", backend)
            backend = "sql"
        return cls(
            data_dir=data_dir,
            database_url=os.getenv("DATABASE_URL", default_sqlite),
            storage_backend=backend,
            weekly_target_hours=_float_env("WEEKLY_TARGET_HOURS", WEEKLY_TARGET_HOURS),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            default_user=os.getenv("SCHICHT_USER", ""),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
