#!/usr/bin/env python3
"""
Media Indexer - Orchestrates discovery, metadata extraction, thumbnails and catalog inserts
"""
import os
import re
import uuid
import sqlite3
import logging
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, field, asdict
from concurrent.futures import ThreadPoolExecutor, as_completed

from .config import Settings
from .database import CatalogDatabase, Channel
from .metadata import MetadataExtractor, MetadataExtractionFailed, VideoMetadata
from .scanner import VideoScanner, MediaRootUnavailable
from .thumbnails import ThumbnailGenerator, ThumbnailGenerationFailed
from .titles import format_title

# One scan per process; a second trigger returns immediately instead of racing
_scan_lock = threading.Lock()

ADDED = "added"
EXISTS = "exists"
FAILED = "failed"
CANCELLED = "cancelled"


def is_scan_running() -> bool:
    return _scan_lock.locked()


class ScanInProgress(RuntimeError):
    """A catalog-wide operation was refused because a scan is running."""


@contextmanager
def scan_exclusive(action: str = "Operation"):
    """
    Hold the scan lock for a catalog-wide operation without waiting for it.
    Raises ScanInProgress when a scan is running.
    """
    if not _scan_lock.acquire(blocking=False):
        raise ScanInProgress(f"{action} refused: a scan is in progress")
    try:
        yield
    finally:
        _scan_lock.release()


@dataclass
class ScanStatistics:
    """Outcome of one scan run. Returned to the caller, never persisted."""
    channels: int = 0
    videos: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False
    already_running: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


class MediaIndexer:
    """Orchestrates the scan pipeline and keeps the catalog in sync with new files."""

    def __init__(self, media_root: Path, thumbnail_dir: Path, db: CatalogDatabase,
                 extractor: Optional[MetadataExtractor] = None,
                 thumbnailer: Optional[ThumbnailGenerator] = None,
                 thumbnail_url_prefix: str = "/thumbnails",
                 workers: int = 1,
                 progress_callback: Optional[Callable[[Dict], None]] = None):
        self.media_root = Path(os.path.abspath(media_root))
        self.thumbnail_dir = Path(os.path.abspath(thumbnail_dir))
        self.db = db
        self.extractor = extractor or MetadataExtractor()
        self.thumbnailer = thumbnailer or ThumbnailGenerator()
        self.thumbnail_url_prefix = "/" + thumbnail_url_prefix.strip("/")
        self.workers = max(1, workers)
        self.progress_callback = progress_callback
        self.scanner = VideoScanner(self.media_root, exclude_dirs=[self.thumbnail_dir])
        self._cancel_event = threading.Event()
        self.logger = logging.getLogger("indexer")

    @classmethod
    def from_settings(cls, settings: Settings, db: Optional[CatalogDatabase] = None,
                      progress_callback: Optional[Callable[[Dict], None]] = None) -> "MediaIndexer":
        """Wire an indexer with the ffprobe/ffmpeg tools named in the settings."""
        return cls(
            settings.media_path,
            settings.thumbnail_path,
            db or CatalogDatabase(settings.db_path),
            extractor=MetadataExtractor(settings.ffprobe_bin, settings.probe_timeout),
            thumbnailer=ThumbnailGenerator(settings.ffmpeg_bin, settings.thumbnail_timeout),
            thumbnail_url_prefix=settings.thumbnail_url_prefix,
            workers=settings.scan_workers,
            progress_callback=progress_callback
        )

    def cancel(self):
        """
        Ask a scan to stop after the files already in flight.
        A request made before the scan takes the lock still applies to it.
        """
        self._cancel_event.set()

    def reset_cancel(self):
        """Drop a cancellation request left over from an earlier scan."""
        self._cancel_event.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def ensure_channel(self, name: str, folder_path: str) -> Channel:
        """Return the channel owning folder_path, creating it on first sight."""
        existing = self.db.get_channel_by_folder(str(folder_path))
        if existing:
            return existing
        return self.db.create_channel(name, str(folder_path), f"Channel for {name}")

    def index_video(self, channel_id: int, file_path: Path,
                    warnings: Optional[List[str]] = None,
                    errors: Optional[List[str]] = None) -> bool:
        """
        Index a single video file.
        Returns True only when a new record was created. Metadata and thumbnail
        failures degrade to defaults; insert failures are logged and return False.
        """
        return self._index_video(channel_id, Path(file_path), warnings, errors) == ADDED

    def scan_and_index(self) -> ScanStatistics:
        """Run a full scan. Always returns statistics, never raises for per-file problems."""
        if not _scan_lock.acquire(blocking=False):
            self.logger.warning("Scan requested while another scan is running, ignoring")
            stats = ScanStatistics(already_running=True)
            stats.errors.append("Scan already in progress")
            return stats

        try:
            return self._run_scan()
        finally:
            # A cancel sent before the lock was taken applies to this run
            self._cancel_event.clear()
            _scan_lock.release()

    def _run_scan(self) -> ScanStatistics:
        stats = ScanStatistics()

        self.logger.info("=" * 70)
        self.logger.info("Starting Media Scan")
        self.logger.info(f"Media root: {self.media_root}")
        self.logger.info(f"Thumbnails: {self.thumbnail_dir}")
        self.logger.info(f"Workers: {self.workers}")
        self.logger.info("=" * 70)

        try:
            self.scanner.check_root()
        except MediaRootUnavailable as e:
            self.logger.error(str(e))
            stats.errors.append(str(e))
            return stats

        try:
            self.thumbnail_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            message = f"Cannot create thumbnail directory {self.thumbnail_dir}: {e}"
            self.logger.error(message)
            stats.errors.append(message)

        try:
            sources = self.scanner.discover()
        except (MediaRootUnavailable, OSError) as e:
            self.logger.error(f"Error during media scan: {e}")
            stats.errors.append(str(e))
            return stats
        stats.errors.extend(self.scanner.errors)

        for source in sources:
            if self.cancelled:
                stats.cancelled = True
                break

            try:
                channel = self.ensure_channel(source.name, str(source.folder_path))
            except sqlite3.Error as e:
                message = f"Error ensuring channel {source.name}: {e}"
                self.logger.error(message)
                stats.errors.append(message)
                continue

            stats.channels += 1
            self._index_channel(channel, source.videos, stats)

        self.logger.info("=" * 70)
        self.logger.info("Scan Cancelled" if stats.cancelled else "Scan Complete")
        self.logger.info(f"Channels: {stats.channels}")
        self.logger.info(f"New videos: {stats.videos}")
        self.logger.info(f"Already indexed: {stats.skipped}")
        self.logger.info(f"Warnings: {len(stats.warnings)}")
        self.logger.info(f"Errors: {len(stats.errors)}")
        self.logger.info("=" * 70)
        return stats

    def _index_channel(self, channel: Channel, videos: List[Path], stats: ScanStatistics):
        """Index a channel's files, in parallel when more than one worker is configured."""
        total = len(videos)
        if not total:
            return

        if self.workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                futures = {
                    pool.submit(self._index_guarded, channel.id, path, stats): path
                    for path in videos
                }
                processed = 0
                # as_completed yields in completion order, not submission order
                for future in as_completed(futures):
                    outcome = future.result()
                    self._record(stats, outcome)
                    if outcome != CANCELLED:
                        processed += 1
                        self._report(channel, processed, total, futures[future])
        else:
            for processed, path in enumerate(videos, 1):
                if self.cancelled:
                    stats.cancelled = True
                    break
                self._record(stats, self._index_guarded(channel.id, path, stats))
                self._report(channel, processed, total, path)

    def _index_guarded(self, channel_id: int, path: Path, stats: ScanStatistics) -> str:
        """Worker wrapper: honours cancellation and keeps one file's fault out of the scan."""
        if self.cancelled:
            return CANCELLED
        try:
            return self._index_video(channel_id, path, stats.warnings, stats.errors)
        except Exception as e:
            message = f"Error indexing video {path}: {e}"
            self.logger.exception(message)
            stats.errors.append(message)
            return FAILED

    def _record(self, stats: ScanStatistics, outcome: str):
        if outcome == ADDED:
            stats.videos += 1
        elif outcome == EXISTS:
            stats.skipped += 1
        elif outcome == CANCELLED:
            stats.cancelled = True

    def _report(self, channel: Channel, processed: int, total: int, path: Path):
        if self.progress_callback:
            self.progress_callback({
                'channel': channel.name,
                'processed': processed,
                'total': total,
                'current_file': path.name
            })

    def _index_video(self, channel_id: int, file_path: Path,
                     warnings: Optional[List[str]], errors: Optional[List[str]]) -> str:
        try:
            if self.db.video_exists(str(file_path)):
                self.logger.debug(f"Video already indexed: {file_path}")
                return EXISTS
        except sqlite3.Error as e:
            self._collect(errors, f"Error checking video {file_path}: {e}", logging.ERROR)
            return FAILED

        metadata = VideoMetadata()
        try:
            metadata = self.extractor.extract(file_path)
        except MetadataExtractionFailed as e:
            self._collect(warnings, f"Could not get metadata for {file_path}: {e}")

        if not metadata.file_size:
            try:
                metadata.file_size = file_path.stat().st_size
            except OSError as e:
                self.logger.debug(f"Failed to stat {file_path}: {e}")

        thumbnail_file = self.thumbnail_dir / self.thumbnail_filename(file_path)
        thumbnail_url = None
        try:
            self.thumbnailer.generate(file_path, thumbnail_file)
            thumbnail_url = f"{self.thumbnail_url_prefix}/{thumbnail_file.name}"
        except ThumbnailGenerationFailed as e:
            self._collect(warnings, f"Could not generate thumbnail for {file_path}: {e}")

        title = format_title(file_path.stem)

        try:
            added = self.db.insert_video(
                channel_id, title, str(file_path), thumbnail_url,
                metadata.duration, metadata.file_size,
                metadata.resolution, metadata.codec
            )
        except sqlite3.Error as e:
            self._collect(errors, f"Error indexing video {file_path}: {e}", logging.ERROR)
            self._discard(thumbnail_url, thumbnail_file)
            return FAILED

        if not added:
            # Another worker or scan inserted the same path first
            self.logger.debug(f"Video indexed concurrently: {file_path}")
            self._discard(thumbnail_url, thumbnail_file)
            return EXISTS

        self.logger.info(f"Indexed video: {title}")
        return ADDED

    @staticmethod
    def thumbnail_filename(file_path: Path) -> str:
        """Unique JPEG name: random token plus the sanitized base name."""
        stem = re.sub(r"[^A-Za-z0-9_-]+", "_", Path(file_path).stem).strip("_")[:80]
        return f"{uuid.uuid4().hex}_{stem or 'video'}.jpg"

    def _collect(self, sink: Optional[List[str]], message: str, level: int = logging.WARNING):
        self.logger.log(level, message)
        if sink is not None:
            sink.append(message)

    def _discard(self, thumbnail_url: Optional[str], thumbnail_file: Path):
        if thumbnail_url is None:
            return
        try:
            thumbnail_file.unlink()
        except OSError as e:
            self.logger.debug(f"Could not remove unused thumbnail {thumbnail_file}: {e}")
