#!/usr/bin/env python3
"""
Configuration - Environment-driven settings and logging setup
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_timeout(name: str, default: float) -> Optional[float]:
    """Read a timeout in seconds; 0 or a negative value disables it."""
    value = float(os.environ.get(name, str(default)))
    return value if value > 0 else None


@dataclass
class Settings:
    """Runtime settings for scanning, storage and the HTTP surface."""
    media_path: Path = Path("/media")
    thumbnail_path: Path = Path("/thumbnails")
    thumbnail_url_prefix: str = "/thumbnails"
    data_dir: Path = Path("/data")
    db_path: Optional[Path] = None
    log_dir: Optional[Path] = None
    ffprobe_bin: str = "ffprobe"
    ffmpeg_bin: str = "ffmpeg"
    probe_timeout: Optional[float] = 30.0
    thumbnail_timeout: Optional[float] = 30.0
    scan_workers: int = 1
    autoscan_interval: int = 0
    scan_on_startup: bool = True
    host: str = "0.0.0.0"
    port: int = 5050

    def __post_init__(self):
        self.media_path = Path(self.media_path)
        self.thumbnail_path = Path(self.thumbnail_path)
        self.data_dir = Path(self.data_dir)
        if self.db_path is None:
            self.db_path = self.data_dir / "catalog.db"
        if self.log_dir is None:
            self.log_dir = self.data_dir / "logs"
        self.thumbnail_url_prefix = "/" + self.thumbnail_url_prefix.strip("/")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        data_dir = Path(os.environ.get("DATA_DIR", "/data"))
        db_path = os.environ.get("DB_PATH")
        log_dir = os.environ.get("LOG_DIR")
        return cls(
            media_path=Path(os.environ.get("MEDIA_PATH", "/media")),
            thumbnail_path=Path(os.environ.get("THUMBNAIL_PATH", "/thumbnails")),
            thumbnail_url_prefix=os.environ.get("THUMBNAIL_URL_PREFIX", "/thumbnails"),
            data_dir=data_dir,
            db_path=Path(db_path) if db_path else None,
            log_dir=Path(log_dir) if log_dir else None,
            ffprobe_bin=os.environ.get("FFPROBE_BIN", "ffprobe"),
            ffmpeg_bin=os.environ.get("FFMPEG_BIN", "ffmpeg"),
            probe_timeout=_env_timeout("PROBE_TIMEOUT", 30),
            thumbnail_timeout=_env_timeout("THUMBNAIL_TIMEOUT", 30),
            scan_workers=max(1, int(os.environ.get("SCAN_WORKERS", "1"))),
            autoscan_interval=int(os.environ.get("AUTOSCAN_INTERVAL", "0")),
            scan_on_startup=_env_bool("SCAN_ON_STARTUP", True),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "5050")),
        )


def setup_logging(settings: Settings, level: int = logging.INFO):
    """Log to a file under the log directory and to the console."""
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / "mytube_scanner.log"

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
