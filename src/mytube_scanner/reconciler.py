#!/usr/bin/env python3
"""
Reconciler - Removes catalog entries that no longer match the filesystem
"""
import os
import sqlite3
import logging
from typing import Dict

from .database import CatalogDatabase
from .indexer import scan_exclusive


class Reconciler:
    """
    Deletes videos whose files are gone, then channels left without videos.
    Every public cleanup raises ScanInProgress instead of running alongside a scan.
    """

    def __init__(self, db: CatalogDatabase):
        self.db = db
        self.logger = logging.getLogger("reconciler")

    def cleanup_missing_videos(self) -> int:
        """
        Remove videos whose file is confirmed absent.
        A failed existence check (permissions, I/O error, offline mount) keeps the record.
        """
        with scan_exclusive("Cleanup"):
            return self._cleanup_missing_videos()

    def cleanup_empty_channels(self) -> int:
        """Remove channels with no videos. Run after cleanup_missing_videos."""
        with scan_exclusive("Cleanup"):
            return self._cleanup_empty_channels()

    def reconcile(self, videos: bool = True, channels: bool = True) -> Dict[str, int]:
        """Run the selected cleanups in dependency order under one hold of the scan lock."""
        result = {}
        with scan_exclusive("Cleanup"):
            if videos:
                result['removed_videos'] = self._cleanup_missing_videos()
            if channels:
                result['removed_channels'] = self._cleanup_empty_channels()
        return result

    def _cleanup_missing_videos(self) -> int:
        removed = 0
        for video in self.db.list_videos():
            try:
                os.stat(video.file_path)
                continue
            except (FileNotFoundError, NotADirectoryError):
                pass
            except OSError as e:
                self.logger.warning(f"Could not check {video.file_path}, keeping record: {e}")
                continue

            try:
                if self.db.delete_video(video.id):
                    removed += 1
                    self.logger.info(f"Removed missing video: {video.file_path}")
            except sqlite3.Error as e:
                self.logger.error(f"Failed to remove video {video.id} ({video.file_path}): {e}")

        self.logger.info(f"Cleaned up {removed} missing videos from database")
        return removed

    def _cleanup_empty_channels(self) -> int:
        removed = self.db.delete_empty_channels()
        self.logger.info(f"Cleaned up {removed} empty channels from database")
        return removed
