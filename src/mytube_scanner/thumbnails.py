#!/usr/bin/env python3
"""
Thumbnail Generator - Extracts a single JPEG frame from a video with ffmpeg
"""
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

import ffmpeg


class ThumbnailGenerationFailed(RuntimeError):
    """Every frame extraction attempt failed."""


class ThumbnailGenerator:
    """
    Grabs one frame at a primary offset and falls back to an earlier offset,
    so clips shorter than the primary offset still get a thumbnail.
    Every attempt writes straight to the destination with overwrite enabled.
    """

    OFFSETS = (5.0, 1.0)
    WIDTH = 480

    def __init__(self, ffmpeg_bin: str = "ffmpeg", timeout: Optional[float] = 30.0,
                 offsets: Sequence[float] = OFFSETS, width: int = WIDTH):
        self.ffmpeg_bin = ffmpeg_bin
        # Per attempt; None lets ffmpeg run indefinitely
        self.timeout = timeout
        self.offsets = tuple(offsets)
        self.width = width
        self.logger = logging.getLogger("thumbnails")

    def build_command(self, video_path: Path, output_path: Path, offset: float) -> List[str]:
        """Build the ffmpeg argument list for one extraction attempt."""
        return (
            ffmpeg
            .input(str(video_path), ss=offset)
            .filter('scale', self.width, -1)
            .output(str(output_path), vframes=1)
            .overwrite_output()
            .compile(cmd=self.ffmpeg_bin)
        )

    def generate(self, video_path: Path, output_path: Path) -> Path:
        """Write a JPEG thumbnail and return its path. Raises ThumbnailGenerationFailed."""
        output_path = Path(output_path)
        failures = []

        for offset in self.offsets:
            error = self._attempt(video_path, output_path, offset)
            if error is None:
                return output_path
            failures.append(f"at {offset:g}s: {error}")
            self.logger.debug(f"Thumbnail attempt for {video_path} failed {failures[-1]}")

        raise ThumbnailGenerationFailed(
            f"Failed to generate thumbnail for {video_path} ({'; '.join(failures)})"
        )

    def _attempt(self, video_path: Path, output_path: Path, offset: float) -> Optional[str]:
        """Run one extraction. Returns None on success, otherwise a failure reason."""
        cmd = self.build_command(video_path, output_path, offset)
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            return f"timed out after {self.timeout}s"
        except OSError as e:
            return f"could not run {self.ffmpeg_bin}: {e}"

        if result.returncode != 0:
            stderr = result.stderr.decode("utf8", errors="replace").strip() if result.stderr else ""
            # Last line carries ffmpeg's actual complaint
            reason = stderr.splitlines()[-1] if stderr else ""
            return f"exit code {result.returncode}: {reason}"

        # ffmpeg can exit 0 without writing a frame when seeking past the end
        if not output_path.exists() or output_path.stat().st_size == 0:
            return "no frame written"

        return None
