#!/usr/bin/env python3
"""
Metadata Extractor - Reads duration, size, resolution and codec through ffprobe
"""
import math
import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, asdict


class MetadataExtractionFailed(RuntimeError):
    """ffprobe could not run, failed, or produced unparseable output."""


@dataclass
class VideoMetadata:
    """Technical metadata for one media file."""
    duration: int = 0
    file_size: int = 0
    resolution: Optional[str] = None
    codec: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


class MetadataExtractor:
    """Wraps ffprobe and maps its JSON report onto VideoMetadata."""

    def __init__(self, ffprobe_bin: str = "ffprobe", timeout: Optional[float] = 30.0):
        self.ffprobe_bin = ffprobe_bin
        # None means ffprobe may run indefinitely
        self.timeout = timeout
        self.logger = logging.getLogger("metadata")

    def build_command(self, file_path: Path) -> List[str]:
        return [
            self.ffprobe_bin,
            '-v', 'error',
            '-show_format',
            '-show_streams',
            '-of', 'json',
            str(file_path)
        ]

    def extract(self, file_path: Path) -> VideoMetadata:
        """Run ffprobe on a file. Raises MetadataExtractionFailed on any process or parse failure."""
        cmd = self.build_command(file_path)
        try:
            # subprocess.run kills ffprobe when the timeout expires
            result = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise MetadataExtractionFailed(
                f"ffprobe timed out after {self.timeout}s for {file_path}"
            ) from e
        except OSError as e:
            raise MetadataExtractionFailed(f"Could not run {self.ffprobe_bin}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf8", errors="replace").strip() if result.stderr else ""
            raise MetadataExtractionFailed(
                f"ffprobe failed for {file_path} (exit code {result.returncode}): {stderr}"
            )

        try:
            report = json.loads(result.stdout.decode("utf8"))
        except ValueError as e:
            # json.JSONDecodeError and UnicodeDecodeError
            raise MetadataExtractionFailed(f"Failed to parse ffprobe output: {e}") from e

        if not isinstance(report, dict):
            raise MetadataExtractionFailed(f"Unexpected ffprobe output for {file_path}")

        return self.parse_report(report)

    @staticmethod
    def parse_report(report: Dict[str, Any]) -> VideoMetadata:
        """Map an ffprobe report to metadata; missing fields become defaults."""
        fmt = report.get("format") or {}
        streams = report.get("streams") or []
        video_stream = next(
            (s for s in streams if isinstance(s, dict) and s.get("codec_type") == "video"),
            None
        )

        resolution = None
        codec = None
        if video_stream:
            width = _to_int(video_stream.get("width"))
            height = _to_int(video_stream.get("height"))
            if width and height:
                resolution = f"{width}x{height}"
            codec = video_stream.get("codec_name") or None

        return VideoMetadata(
            duration=_floor_seconds(fmt.get("duration")),
            file_size=_to_int(fmt.get("size")) or 0,
            resolution=resolution,
            codec=codec
        )


def _floor_seconds(value) -> int:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return 0
    return int(math.floor(seconds))


def _to_int(value) -> Optional[int]:
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number >= 0 else None
