#!/usr/bin/env python3
"""
SQLite Catalog Store for Channels and Videos
Handles all persistence with ACID guarantees, unique natural keys and proper indexing.
"""
import sqlite3
import logging
from pathlib import Path
from typing import List, Dict, Optional
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class Channel:
    """A catalog channel backed by one top-level media directory."""
    id: int
    name: str
    folder_path: str
    description: Optional[str] = None
    subscriber_count: int = 0
    video_count: int = 0
    created_at: Optional[str] = None


@dataclass
class Video:
    """A catalogued media file."""
    id: int
    channel_id: int
    title: str
    file_path: str
    thumbnail_path: Optional[str] = None
    duration: int = 0
    file_size: int = 0
    resolution: Optional[str] = None
    codec: Optional[str] = None
    view_count: int = 0
    like_count: int = 0
    published_at: Optional[str] = None
    created_at: Optional[str] = None


class CatalogDatabase:
    """Manages the SQLite catalog of channels and videos."""

    def __init__(self, db_path: Path, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.logger = logging.getLogger("database")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        """Initialize database schema with proper indexes."""
        with self.transaction() as conn:
            # Channels table - one row per top-level media directory
            conn.execute("""
                CREATE TABLE IF NOT EXISTS channels (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    folder_path TEXT UNIQUE NOT NULL,
                    description TEXT,
                    subscriber_count INTEGER NOT NULL DEFAULT 0,
                    video_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Videos table - one row per indexed file, path is the natural key
            conn.execute("""
                CREATE TABLE IF NOT EXISTS videos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    file_path TEXT UNIQUE NOT NULL,
                    thumbnail_path TEXT,
                    duration INTEGER NOT NULL DEFAULT 0,
                    file_size INTEGER NOT NULL DEFAULT 0,
                    resolution TEXT,
                    codec TEXT,
                    view_count INTEGER NOT NULL DEFAULT 0,
                    like_count INTEGER NOT NULL DEFAULT 0,
                    published_at TEXT NOT NULL,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (channel_id) REFERENCES channels(id) ON DELETE CASCADE
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_videos_channel ON videos(channel_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_videos_published ON videos(published_at)")

        self.logger.info(f"Database initialized: {self.db_path}")

    @contextmanager
    def transaction(self):
        """Context manager for database transactions with automatic commit/rollback."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row  # Access columns by name
        conn.execute("PRAGMA foreign_keys = ON")  # Enable foreign key constraints
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            self.logger.error(f"Transaction failed: {e}")
            raise
        finally:
            conn.close()

    # Channels

    def get_channel_by_folder(self, folder_path: str) -> Optional[Channel]:
        """Look up a channel by its folder path."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM channels WHERE folder_path = ?",
                (str(folder_path),)
            ).fetchone()
            return Channel(**dict(row)) if row else None

    def create_channel(self, name: str, folder_path: str,
                       description: Optional[str] = None) -> Channel:
        """Insert a channel unless one already owns the folder path, then return the stored row."""
        with self.transaction() as conn:
            cursor = conn.execute("""
                INSERT INTO channels (name, folder_path, description)
                VALUES (?, ?, ?)
                ON CONFLICT(folder_path) DO NOTHING
            """, (name, str(folder_path), description))
            if cursor.rowcount:
                self.logger.info(f"Created channel: {name}")

            row = conn.execute(
                "SELECT * FROM channels WHERE folder_path = ?",
                (str(folder_path),)
            ).fetchone()
            return Channel(**dict(row))

    def list_channels(self) -> List[Channel]:
        """Get all channels ordered by name."""
        with self.transaction() as conn:
            cursor = conn.execute("SELECT * FROM channels ORDER BY name")
            return [Channel(**dict(row)) for row in cursor.fetchall()]

    def delete_empty_channels(self) -> int:
        """Remove channels that have no videos."""
        with self.transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM channels
                WHERE id NOT IN (SELECT DISTINCT channel_id FROM videos)
            """)
            return cursor.rowcount

    def count_channels(self) -> int:
        with self.transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM channels").fetchone()[0]

    # Videos

    def video_exists(self, file_path: str) -> bool:
        """Check if a video with this exact path is catalogued."""
        with self.transaction() as conn:
            cursor = conn.execute(
                "SELECT 1 FROM videos WHERE file_path = ?",
                (str(file_path),)
            )
            return cursor.fetchone() is not None

    def get_video_by_path(self, file_path: str) -> Optional[Video]:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM videos WHERE file_path = ?",
                (str(file_path),)
            ).fetchone()
            return Video(**dict(row)) if row else None

    def insert_video(self, channel_id: int, title: str, file_path: str,
                     thumbnail_path: Optional[str], duration: int, file_size: int,
                     resolution: Optional[str], codec: Optional[str],
                     published_at: Optional[datetime] = None) -> bool:
        """
        Insert a video record.
        Returns False when another record already owns the file path.
        """
        if published_at is None:
            published_at = datetime.now(timezone.utc)

        with self.transaction() as conn:
            cursor = conn.execute("""
                INSERT INTO videos
                (channel_id, title, file_path, thumbnail_path, duration,
                 file_size, resolution, codec, published_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(file_path) DO NOTHING
            """, (
                channel_id, title, str(file_path), thumbnail_path, duration,
                file_size, resolution, codec, published_at.isoformat()
            ))
            return cursor.rowcount == 1

    def list_videos(self, channel_id: Optional[int] = None) -> List[Video]:
        """Get all videos, optionally restricted to one channel."""
        with self.transaction() as conn:
            if channel_id is None:
                cursor = conn.execute("SELECT * FROM videos ORDER BY id")
            else:
                cursor = conn.execute(
                    "SELECT * FROM videos WHERE channel_id = ? ORDER BY id",
                    (channel_id,)
                )
            return [Video(**dict(row)) for row in cursor.fetchall()]

    def delete_video(self, video_id: int) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM videos WHERE id = ?", (video_id,))
            return cursor.rowcount == 1

    def count_videos(self) -> int:
        with self.transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM videos").fetchone()[0]

    def get_statistics(self) -> Dict:
        """Get catalog statistics."""
        with self.transaction() as conn:
            stats = {}

            cursor = conn.execute("SELECT COUNT(*) FROM channels")
            stats['total_channels'] = cursor.fetchone()[0]

            cursor = conn.execute("SELECT COUNT(*) FROM videos")
            stats['total_videos'] = cursor.fetchone()[0]

            # Total playback time in seconds
            cursor = conn.execute("SELECT SUM(duration) FROM videos")
            result = cursor.fetchone()[0]
            stats['total_duration'] = result if result else 0

            cursor = conn.execute("SELECT SUM(file_size) FROM videos")
            result = cursor.fetchone()[0]
            stats['total_size'] = result if result else 0

            cursor = conn.execute("SELECT COUNT(*) FROM videos WHERE thumbnail_path IS NULL")
            stats['videos_without_thumbnail'] = cursor.fetchone()[0]

            return stats
