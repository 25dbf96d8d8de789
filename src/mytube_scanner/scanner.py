#!/usr/bin/env python3
"""
Video Scanner - Discovers channel directories and video files under the media root

Layout contract:
    <root>/<Channel>/video.mp4           -> Channel
    <root>/<Channel>/Sub/Dir/video.mkv   -> Channel (subdirectories never start a channel)
    <root>/video.mp4                     -> "Uncategorized", keyed by <root>
"""
import os
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple
from dataclasses import dataclass, field

UNCATEGORIZED_CHANNEL = "Uncategorized"


class MediaRootUnavailable(RuntimeError):
    """The media root is missing, not a directory or unreadable."""


@dataclass
class ChannelSource:
    """A channel boundary found on disk and the video files it owns."""
    name: str
    folder_path: Path
    videos: List[Path] = field(default_factory=list)


class VideoScanner:
    """Walks the media root and classifies directories as channels and files as videos."""

    VIDEO_EXTENSIONS = {
        ".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv",
        ".webm", ".m4v", ".mpeg", ".mpg", ".3gp",
    }

    def __init__(self, root_dir: Path, exclude_dirs: Optional[Iterable[Path]] = None):
        self.root_dir = Path(os.path.abspath(root_dir))
        self.exclude_dirs = {self._normalize(p) for p in (exclude_dirs or [])}
        self.errors: List[str] = []
        self.logger = logging.getLogger("scanner")

    @classmethod
    def is_video_file(cls, name: str) -> bool:
        """Check the extension against the allow-list, ignoring case."""
        return os.path.splitext(name)[1].lower() in cls.VIDEO_EXTENSIONS

    def check_root(self):
        """Fail fast when the media root cannot be listed."""
        if not self.root_dir.is_dir():
            raise MediaRootUnavailable(f"Media path not accessible: {self.root_dir}")
        try:
            with os.scandir(self.root_dir):
                pass
        except OSError as e:
            raise MediaRootUnavailable(f"Media path not accessible: {self.root_dir} ({e})") from e

    def discover(self) -> List[ChannelSource]:
        """
        Classify the entries of the media root.
        Each top-level directory becomes one ChannelSource holding every video
        beneath it; loose top-level videos go to the "Uncategorized" source.
        """
        self.check_root()
        self.errors = []
        self.logger.info(f"Scanning for videos in: {self.root_dir}")

        visited: Set[Tuple[int, int]] = set()
        root_key = self._dir_key(self.root_dir)
        if root_key:
            visited.add(root_key)

        channels: List[ChannelSource] = []
        loose_videos: List[Path] = []

        with os.scandir(self.root_dir) as entries:
            top_level = sorted(entries, key=lambda e: e.name)

        for entry in top_level:
            path = self.root_dir / entry.name
            if self._is_dir(entry):
                if self._normalize(path) in self.exclude_dirs:
                    self.logger.debug(f"Skipping excluded directory: {path}")
                    continue
                channel = ChannelSource(name=entry.name, folder_path=path)
                channel.videos = self._collect_videos(path, visited)
                channels.append(channel)
            elif self.is_video_file(entry.name):
                loose_videos.append(path)

        if loose_videos:
            channels.append(ChannelSource(
                name=UNCATEGORIZED_CHANNEL,
                folder_path=self.root_dir,
                videos=loose_videos
            ))

        total = sum(len(c.videos) for c in channels)
        self.logger.info(f"Found {len(channels)} channels with {total} video files")
        return channels

    def _collect_videos(self, channel_dir: Path, visited: Set[Tuple[int, int]]) -> List[Path]:
        """Collect every video under a channel directory using an explicit stack."""
        videos = []
        stack = [channel_dir]

        while stack:
            current = stack.pop()
            key = self._dir_key(current)
            if key is not None:
                if key in visited:
                    self.logger.debug(f"Directory already visited, skipping: {current}")
                    continue
                visited.add(key)

            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                message = f"Error scanning directory {current}: {e}"
                self.logger.error(message)
                self.errors.append(message)
                continue

            subdirs = []
            for entry in entries:
                path = current / entry.name
                if self._is_dir(entry):
                    if self._normalize(path) not in self.exclude_dirs:
                        subdirs.append(path)
                elif self.is_video_file(entry.name):
                    videos.append(path)

            # Reverse so the stack pops subdirectories in name order
            stack.extend(reversed(subdirs))

        return videos

    def _is_dir(self, entry: os.DirEntry) -> bool:
        try:
            return entry.is_dir()
        except OSError as e:
            self.logger.warning(f"Failed to stat {entry.path}: {e}")
            return False

    def _dir_key(self, path: Path) -> Optional[Tuple[int, int]]:
        """Identify a directory by device and inode so symlinked loops are walked once."""
        try:
            stat = os.stat(path)
        except OSError:
            return None
        return (stat.st_dev, stat.st_ino)

    @staticmethod
    def _normalize(path: Path) -> str:
        return os.path.normcase(os.path.abspath(str(path)))
