from pathlib import Path

import pytest

from mytube_scanner.database import CatalogDatabase
from mytube_scanner.indexer import MediaIndexer
from mytube_scanner.metadata import MetadataExtractionFailed, VideoMetadata
from mytube_scanner.thumbnails import ThumbnailGenerationFailed


class FakeExtractor:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def extract(self, file_path):
        self.calls.append(Path(file_path))
        if self.fail:
            raise MetadataExtractionFailed("ffprobe exited with code 1")
        return VideoMetadata(duration=42, file_size=2048, resolution="1920x1080", codec="h264")


class FakeThumbnailer:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def generate(self, video_path, output_path):
        self.calls.append((Path(video_path), Path(output_path)))
        if self.fail:
            raise ThumbnailGenerationFailed("no frame written")
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(b"\xff\xd8\xff\xe0jpeg")
        return Path(output_path)


def write_video(path: Path, size: int = 2048) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\0" * size)
    return path


@pytest.fixture
def media_root(tmp_path):
    """root/ChannelA/a.mp4, root/ChannelA/Sub/b.mkv, root/loose.mp4"""
    root = tmp_path / "media"
    write_video(root / "ChannelA" / "a.mp4")
    write_video(root / "ChannelA" / "Sub" / "b.mkv")
    write_video(root / "loose.mp4")
    return root


@pytest.fixture
def db(tmp_path):
    return CatalogDatabase(tmp_path / "data" / "catalog.db")


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def thumbnailer():
    return FakeThumbnailer()


@pytest.fixture
def make_indexer(tmp_path, db, extractor, thumbnailer):
    def factory(root, **kwargs):
        kwargs.setdefault("extractor", extractor)
        kwargs.setdefault("thumbnailer", thumbnailer)
        return MediaIndexer(root, tmp_path / "thumbnails", db, **kwargs)
    return factory
