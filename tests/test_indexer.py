import subprocess
import threading
from pathlib import Path
from unittest.mock import patch

from mytube_scanner import indexer as indexer_module
from mytube_scanner.scanner import UNCATEGORIZED_CHANNEL
from mytube_scanner.thumbnails import ThumbnailGenerator
from conftest import FakeExtractor, FakeThumbnailer, write_video


def catalog_snapshot(db):
    channels = {c.id: c.name for c in db.list_channels()}
    return sorted(
        (channels[v.channel_id], v.file_path, v.title, v.thumbnail_path, v.duration)
        for v in db.list_videos()
    )


def test_scan_classifies_channels_and_videos(media_root, db, make_indexer):
    stats = make_indexer(media_root).scan_and_index()

    assert stats.channels == 2
    assert stats.videos == 3
    assert stats.errors == []

    channels = {c.name: c for c in db.list_channels()}
    assert set(channels) == {"ChannelA", UNCATEGORIZED_CHANNEL}
    assert channels["ChannelA"].folder_path == str(media_root / "ChannelA")
    assert channels[UNCATEGORIZED_CHANNEL].folder_path == str(media_root)

    owner = {v.file_path: v.channel_id for v in db.list_videos()}
    assert owner[str(media_root / "ChannelA" / "a.mp4")] == channels["ChannelA"].id
    assert owner[str(media_root / "ChannelA" / "Sub" / "b.mkv")] == channels["ChannelA"].id
    assert owner[str(media_root / "loose.mp4")] == channels[UNCATEGORIZED_CHANNEL].id


def test_second_scan_is_idempotent(media_root, db, make_indexer, extractor):
    indexer = make_indexer(media_root)
    indexer.scan_and_index()
    before = catalog_snapshot(db)
    extracted = len(extractor.calls)

    stats = indexer.scan_and_index()

    assert stats.videos == 0
    assert stats.skipped == 3
    assert catalog_snapshot(db) == before
    assert len(extractor.calls) == extracted
    assert db.count_channels() == 2


def test_new_files_are_picked_up_on_rescan(media_root, db, make_indexer):
    indexer = make_indexer(media_root)
    indexer.scan_and_index()
    write_video(media_root / "ChannelB" / "new.webm")

    stats = indexer.scan_and_index()

    assert stats.videos == 1
    assert db.count_videos() == 4
    assert db.get_channel_by_folder(str(media_root / "ChannelB")) is not None


def test_indexed_video_fields(media_root, db, make_indexer, tmp_path):
    make_indexer(media_root).scan_and_index()

    video = db.get_video_by_path(str(media_root / "ChannelA" / "a.mp4"))
    assert video.title == "A"
    assert video.duration == 42
    assert video.resolution == "1920x1080"
    assert video.codec == "h264"
    assert video.thumbnail_path.startswith("/thumbnails/")
    assert video.thumbnail_path.endswith("_a.jpg")
    assert (tmp_path / "thumbnails" / video.thumbnail_path.split("/")[-1]).exists()


def test_metadata_failure_still_indexes(tmp_path, db, make_indexer):
    root = tmp_path / "media"
    path = write_video(root / "Chan" / "broken_clip.mp4", size=777)
    indexer = make_indexer(root, extractor=FakeExtractor(fail=True))
    channel = indexer.ensure_channel("Chan", str(root / "Chan"))
    warnings = []

    assert indexer.index_video(channel.id, path, warnings=warnings) is True

    video = db.get_video_by_path(str(path))
    assert video.title == "Broken Clip"
    assert video.duration == 0
    assert video.resolution is None
    assert video.codec is None
    assert video.file_size == 777
    assert len(warnings) == 1


def test_thumbnail_failure_leaves_null_reference(media_root, db, make_indexer):
    stats = make_indexer(media_root, thumbnailer=FakeThumbnailer(fail=True)).scan_and_index()

    assert stats.videos == 3
    assert len(stats.warnings) == 3
    assert all(v.thumbnail_path is None for v in db.list_videos())


@patch('mytube_scanner.thumbnails.subprocess.run')
def test_short_video_gets_thumbnail_from_fallback_offset(mock_run, tmp_path, db, make_indexer):
    root = tmp_path / "media"
    path = write_video(root / "Chan" / "short.mp4")

    def fake_run(cmd, **kwargs):
        if float(cmd[cmd.index("-ss") + 1]) == 5.0:
            return subprocess.CompletedProcess(cmd, 1, b"", b"Output file is empty")
        output = Path(next(arg for arg in cmd if arg.endswith(".jpg")))
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(b"jpeg")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    mock_run.side_effect = fake_run
    indexer = make_indexer(root, thumbnailer=ThumbnailGenerator())
    channel = indexer.ensure_channel("Chan", str(root / "Chan"))

    assert indexer.index_video(channel.id, path) is True
    assert db.get_video_by_path(str(path)).thumbnail_path is not None
    assert mock_run.call_count == 2


def test_missing_root_returns_empty_statistics(tmp_path, db, make_indexer):
    stats = make_indexer(tmp_path / "nowhere").scan_and_index()

    assert stats.channels == 0
    assert stats.videos == 0
    assert len(stats.errors) == 1
    assert db.count_channels() == 0


def test_ensure_channel_get_or_create(tmp_path, db, make_indexer):
    indexer = make_indexer(tmp_path)

    first = indexer.ensure_channel("Chan", "/media/Chan")
    second = indexer.ensure_channel("Chan", "/media/Chan")

    assert first.id == second.id
    assert first.description == "Channel for Chan"
    assert db.count_channels() == 1


def test_index_video_skips_known_path(media_root, db, make_indexer, extractor, thumbnailer):
    indexer = make_indexer(media_root)
    channel = indexer.ensure_channel("ChannelA", str(media_root / "ChannelA"))
    path = media_root / "ChannelA" / "a.mp4"

    assert indexer.index_video(channel.id, path) is True
    assert indexer.index_video(channel.id, path) is False
    assert len(extractor.calls) == 1
    assert len(thumbnailer.calls) == 1


def test_insert_failure_is_reported_not_raised(media_root, db, make_indexer):
    indexer = make_indexer(media_root)
    errors = []

    # No channel 999 exists, so the foreign key rejects the insert
    assert indexer.index_video(999, media_root / "loose.mp4", errors=errors) is False
    assert len(errors) == 1
    assert db.count_videos() == 0


def test_concurrent_indexing_of_same_path_creates_one_record(media_root, db, make_indexer, tmp_path):
    indexer = make_indexer(media_root)
    channel = indexer.ensure_channel("ChannelA", str(media_root / "ChannelA"))
    path = media_root / "ChannelA" / "a.mp4"
    barrier = threading.Barrier(4)
    results = []

    def worker():
        barrier.wait()
        results.append(indexer.index_video(channel.id, path))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert db.count_videos() == 1
    # Losing workers remove the thumbnails they generated
    assert len(list((tmp_path / "thumbnails").glob("*.jpg"))) == 1


def test_parallel_workers_index_everything_once(tmp_path, db, make_indexer):
    root = tmp_path / "media"
    for i in range(12):
        write_video(root / "Big" / f"clip_{i:02d}.mp4")

    stats = make_indexer(root, workers=4).scan_and_index()

    assert stats.videos == 12
    assert db.count_videos() == 12
    assert len({v.file_path for v in db.list_videos()}) == 12


def test_second_trigger_while_running_is_ignored(media_root, db, make_indexer):
    with indexer_module._scan_lock:
        assert indexer_module.is_scan_running()
        stats = make_indexer(media_root).scan_and_index()

    assert stats.already_running is True
    assert stats.errors == ["Scan already in progress"]
    assert db.count_videos() == 0
    assert not indexer_module.is_scan_running()


def test_cancel_stops_between_files(tmp_path, db, make_indexer):
    root = tmp_path / "media"
    for i in range(5):
        write_video(root / "Chan" / f"clip_{i}.mp4")
    write_video(root / "Later" / "other.mp4")
    progress = []

    def on_progress(update):
        progress.append(update)
        indexer.cancel()

    indexer = make_indexer(root, progress_callback=on_progress)
    stats = indexer.scan_and_index()

    assert stats.cancelled is True
    assert stats.videos == 1
    assert db.count_videos() == 1
    assert progress[0]['channel'] == "Chan"
    assert progress[0]['current_file'] == "clip_0.mp4"

    # The next scan starts fresh and finishes the job
    indexer.progress_callback = None
    stats = indexer.scan_and_index()
    assert stats.cancelled is False
    assert db.count_videos() == 6


def test_cancel_before_scan_takes_lock_is_honoured(media_root, db, make_indexer):
    indexer = make_indexer(media_root)
    indexer.cancel()

    stats = indexer.scan_and_index()

    assert stats.cancelled is True
    assert stats.videos == 0
    assert db.count_videos() == 0
    assert indexer.cancelled is False

    stats = indexer.scan_and_index()
    assert stats.cancelled is False
    assert stats.videos == 3


def test_reset_cancel_drops_stale_request(media_root, make_indexer):
    indexer = make_indexer(media_root)
    indexer.cancel()
    indexer.reset_cancel()

    stats = indexer.scan_and_index()

    assert stats.cancelled is False
    assert stats.videos == 3


def test_thumbnail_filenames_are_unique_and_safe():
    names = {indexer_module.MediaIndexer.thumbnail_filename("/media/a b/My clip (1).mp4")
             for _ in range(50)}

    assert len(names) == 50
    for name in names:
        token, rest = name.split("_", 1)
        assert len(token) == 32
        assert rest == "My_clip_1.jpg"


def test_statistics_serialize(media_root, make_indexer):
    data = make_indexer(media_root).scan_and_index().to_dict()

    assert data["channels"] == 2
    assert data["videos"] == 3
    assert data["errors"] == []
    assert data["cancelled"] is False


def test_scan_exclusive_refuses_while_held_and_releases(media_root, make_indexer):
    with indexer_module.scan_exclusive("Cleanup"):
        assert make_indexer(media_root).scan_and_index().already_running is True
        try:
            with indexer_module.scan_exclusive("Cleanup"):
                raise AssertionError("lock was taken twice")
        except indexer_module.ScanInProgress as e:
            assert "Cleanup refused" in str(e)

    assert not indexer_module.is_scan_running()
