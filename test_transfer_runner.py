"""Tests for the transfer runner pipeline."""

import logging
from pathlib import Path

import pytest

from bucket_transfer import (
    DownloadError,
    ListError,
    TransferConfig,
    TransferOutcome,
    TransferRunner,
    UploadError,
)
from bucket_transfer.models import TransferResult
from bucket_transfer.storage import InMemoryObjectStore


def make_runner(tmp_path, buckets, source="videos-in", destination="videos-out"):
    store = InMemoryObjectStore(buckets=buckets)
    config = TransferConfig(source_bucket=source, destination_bucket=destination, work_dir=tmp_path)
    return TransferRunner(config, store=store), store


def test_empty_listing_is_success_without_download_or_upload(tmp_path, caplog):
    """An empty source bucket ends the run successfully and touches nothing else."""
    runner, store = make_runner(tmp_path, {"videos-in": {}, "videos-out": {}})

    with caplog.at_level(logging.INFO, logger="bucket_transfer"):
        result = runner.run()

    assert result.outcome is TransferOutcome.EMPTY
    assert result.ok
    assert result.key is None
    assert [call[0] for call in store.calls] == ["list"]
    assert store.buckets["videos-out"] == {}
    assert "No objects found in source bucket" in caplog.text


def test_only_first_object_is_transferred(tmp_path):
    """Listing [clip_a.mp4, clip_b.mp4] copies clip_a.mp4 and nothing else."""
    runner, store = make_runner(
        tmp_path,
        {
            "videos-in": {"clip_a.mp4": b"first clip", "clip_b.mp4": b"second clip"},
            "videos-out": {},
        },
    )

    result = runner.run()

    assert result.outcome is TransferOutcome.TRANSFERRED
    assert result.key == "clip_a.mp4"
    assert result.bytes_transferred == len(b"first clip")
    assert store.buckets["videos-out"] == {"clip_a.mp4": b"first clip"}
    assert ("download", "videos-in", "clip_b.mp4") not in store.calls
    assert store.calls == [
        ("list", "videos-in", None),
        ("download", "videos-in", "clip_a.mp4"),
        ("upload", "videos-out", "clip_a.mp4"),
    ]


def test_listing_order_is_not_resorted(tmp_path):
    """The backend's first entry wins even when it does not sort first."""
    runner, store = make_runner(
        tmp_path,
        {"videos-in": {"zeta.mov": b"z", "alpha.mov": b"a"}, "videos-out": {}},
    )

    result = runner.run()

    assert result.key == "zeta.mov"
    assert list(store.buckets["videos-out"]) == ["zeta.mov"]


def test_temporary_file_removed_after_success(tmp_path):
    runner, _ = make_runner(tmp_path, {"videos-in": {"clip_a.mp4": b"data"}, "videos-out": {}})

    result = runner.run()

    assert result.local_path == (tmp_path / "clip_a.mp4").resolve()
    assert not (tmp_path / "clip_a.mp4").exists()


def test_existing_local_file_is_overwritten(tmp_path):
    (tmp_path / "clip_a.mp4").write_bytes(b"stale leftover from an earlier run")
    runner, store = make_runner(tmp_path, {"videos-in": {"clip_a.mp4": b"fresh"}, "videos-out": {}})

    runner.run()

    assert store.buckets["videos-out"]["clip_a.mp4"] == b"fresh"


def test_listing_permission_failure(tmp_path, caplog):
    """A failed listing reports a ListError and creates no temporary file."""
    runner, store = make_runner(tmp_path, {"videos-in": {"clip_a.mp4": b"data"}, "videos-out": {}})
    store.fail("list", PermissionError("AccessDenied"))

    with caplog.at_level(logging.ERROR, logger="bucket_transfer"):
        result = runner.run()

    assert result.outcome is TransferOutcome.FAILED
    assert not result.ok
    assert isinstance(result.error, ListError)
    assert isinstance(result.error.__cause__, PermissionError)
    assert result.error.stage == "list"
    assert store.buckets["videos-out"] == {}
    assert list(tmp_path.iterdir()) == []
    assert "AccessDenied" in caplog.text


def test_missing_source_bucket_surfaces_as_list_error(tmp_path):
    """No upfront validation: the backend rejects the missing bucket."""
    runner, store = make_runner(tmp_path, {"videos-out": {}}, source=None)

    result = runner.run()

    assert isinstance(result.error, ListError)
    assert store.calls == [("list", None, None)]


def test_download_failure(tmp_path):
    runner, store = make_runner(tmp_path, {"videos-in": {"clip_a.mp4": b"data"}, "videos-out": {}})
    store.fail("download", ConnectionError("connection reset"))

    result = runner.run()

    assert isinstance(result.error, DownloadError)
    assert result.error.key == "clip_a.mp4"
    assert result.error.bucket == "videos-in"
    assert store.buckets["videos-out"] == {}


def test_upload_failure_leaves_temporary_file(tmp_path):
    """The local copy is kept on disk when the upload fails."""
    runner, store = make_runner(tmp_path, {"videos-in": {"clip_a.mp4": b"data"}, "videos-out": {}})
    store.fail("upload", RuntimeError("SlowDown"))

    result = runner.run()

    assert isinstance(result.error, UploadError)
    assert result.key == "clip_a.mp4"
    assert (tmp_path / "clip_a.mp4").read_bytes() == b"data"


def test_missing_destination_bucket_surfaces_as_upload_error(tmp_path):
    runner, _ = make_runner(tmp_path, {"videos-in": {"clip_a.mp4": b"data"}}, destination=None)

    result = runner.run()

    assert isinstance(result.error, UploadError)
    assert (tmp_path / "clip_a.mp4").exists()


def test_key_outside_work_dir_is_rejected(tmp_path):
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    store = InMemoryObjectStore(buckets={"videos-in": {"../escape.mp4": b"data"}, "videos-out": {}})
    runner = TransferRunner(
        TransferConfig(source_bucket="videos-in", destination_bucket="videos-out", work_dir=work_dir),
        store=store,
    )

    result = runner.run()

    assert isinstance(result.error, DownloadError)
    assert not (tmp_path / "escape.mp4").exists()
    assert [call[0] for call in store.calls] == ["list"]


def test_nested_key_without_local_directory_fails_download(tmp_path):
    runner, _ = make_runner(tmp_path, {"videos-in": {"2024/clip_a.mp4": b"data"}, "videos-out": {}})

    result = runner.run()

    assert isinstance(result.error, DownloadError)
    assert not (tmp_path / "2024").exists()


class VanishingUploadStore(InMemoryObjectStore):
    """Removes the local file while uploading so cleanup cannot find it."""

    def upload(self, bucket, key, source):
        etag = super().upload(bucket, key, source)
        Path(source).unlink()
        return etag


def test_cleanup_failure_propagates(tmp_path):
    store = VanishingUploadStore(buckets={"videos-in": {"clip_a.mp4": b"data"}, "videos-out": {}})
    runner = TransferRunner(
        TransferConfig(source_bucket="videos-in", destination_bucket="videos-out", work_dir=tmp_path),
        store=store,
    )

    with pytest.raises(FileNotFoundError):
        runner.run()
    assert store.buckets["videos-out"] == {"clip_a.mp4": b"data"}


def test_rerun_repeats_the_same_copy(tmp_path):
    runner, store = make_runner(tmp_path, {"videos-in": {"clip_a.mp4": b"data"}, "videos-out": {}})

    first = runner.run()
    second = runner.run()

    assert first.key == second.key == "clip_a.mp4"
    assert [call for call in store.calls if call[0] == "upload"] == [
        ("upload", "videos-out", "clip_a.mp4"),
        ("upload", "videos-out", "clip_a.mp4"),
    ]


def test_result_to_dict_reports_stage():
    """Failed results carry the stage of the error in their dict form."""
    error = UploadError("Failed to upload clip_a.mp4 to videos-out: boom", bucket="videos-out", key="clip_a.mp4")
    result = TransferResult(
        source_bucket="videos-in",
        destination_bucket="videos-out",
        outcome=TransferOutcome.FAILED,
        key="clip_a.mp4",
        error=error,
    )

    data = result.to_dict()
    assert data["outcome"] == "failed"
    assert data["error"] == {"stage": "upload", "message": str(error)}
    assert data["local_path"] is None
