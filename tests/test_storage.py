import time

import pytest

import storage
from storage import UploadRejected


@pytest.mark.parametrize("format,expected", [
    ("PNG", "png"),
    ("JPEG", "jpg"),
    ("GIF", "gif"),
    ("BMP", "bmp"),
    ("WEBP", "webp"),
])
def test_detect_image_type(image_factory, format, expected):
    assert storage.detect_image_type(image_factory(8, 8, format)) == expected


@pytest.mark.parametrize("data", [
    b"BMW owners manual, chapter 1",
    b"\xff\xd8\xffnot really a jpeg",
    b"RIFF\x00\x00\x00\x00WEBPVP8 ",
    b"<html></html>",
    b"",
])
def test_detect_image_type_rejects_non_images(data):
    assert storage.detect_image_type(data) is None


def test_detect_image_type_rejects_truncated_jpeg(jpeg_bytes):
    assert storage.detect_image_type(jpeg_bytes[: len(jpeg_bytes) // 2]) is None


def test_detect_image_type_rejects_unaccepted_format(image_factory):
    assert storage.detect_image_type(image_factory(8, 8, "TIFF")) is None


def test_save_upload_uses_decoded_format(tmp_path, jpeg_bytes):
    name = storage.save_upload(jpeg_bytes, tmp_path, max_bytes=len(jpeg_bytes))

    assert storage.is_upload_name(name)
    assert name.endswith(".jpg")
    assert (tmp_path / name).read_bytes() == jpeg_bytes
    assert storage.public_url(name) == f"/uploads/{name}"


def test_save_upload_rejects_text_that_looks_like_bitmap(tmp_path):
    with pytest.raises(UploadRejected) as excinfo:
        storage.save_upload(b"BMW owners manual, chapter 1", tmp_path, max_bytes=1024)

    assert excinfo.value.status_code == 415
    assert list(tmp_path.iterdir()) == []


def test_save_upload_rejects_empty_file(tmp_path):
    with pytest.raises(UploadRejected) as excinfo:
        storage.save_upload(b"", tmp_path, max_bytes=10)
    assert excinfo.value.status_code == 400


def test_is_upload_name_rejects_paths():
    assert not storage.is_upload_name(None)
    assert not storage.is_upload_name("../upload-1-ab.png")
    assert not storage.is_upload_name("upload-1-ab.exe")


def _upload_named(directory, millis, suffix="ab"):
    path = directory / f"upload-{millis}-{suffix}.png"
    path.write_bytes(b"x")
    return path


def test_prune_keeps_newest_files(tmp_path):
    now = int(time.time() * 1000)
    paths = [_upload_named(tmp_path, now - offset) for offset in (3000, 2000, 1000, 0)]

    removed = storage.prune_uploads(tmp_path, max_files=2, max_age_seconds=3600)

    assert removed == 2
    assert [p.exists() for p in paths] == [False, False, True, True]


def test_prune_removes_expired_uploads(tmp_path):
    now = int(time.time() * 1000)
    old = _upload_named(tmp_path, now - 2 * 3600 * 1000)
    fresh = _upload_named(tmp_path, now)

    storage.prune_uploads(tmp_path, max_files=10, max_age_seconds=3600)

    assert not old.exists()
    assert fresh.exists()


def test_prune_never_removes_kept_upload(tmp_path):
    now = int(time.time() * 1000)
    kept = _upload_named(tmp_path, now - 2 * 3600 * 1000, suffix="cd")
    newer = _upload_named(tmp_path, now)

    storage.prune_uploads(tmp_path, max_files=1, max_age_seconds=3600, keep=kept.name)

    assert kept.exists()
    assert not newer.exists()


def test_prune_ignores_foreign_files_and_missing_dir(tmp_path):
    other = tmp_path / "README.txt"
    other.write_text("keep me")

    assert storage.prune_uploads(tmp_path, max_files=1, max_age_seconds=1) == 0
    assert other.exists()
    assert storage.prune_uploads(tmp_path / "missing", max_files=1, max_age_seconds=1) == 0


def test_artifact_paths_are_unique(tmp_path):
    paths = {storage.new_artifact_path(tmp_path) for _ in range(50)}
    assert len(paths) == 50


def test_download_name_carries_timestamp(tmp_path):
    artifact = tmp_path / "screenshot-1700000000000-abcdef.png"
    assert storage.download_name(artifact) == "image-screenshot-1700000000000.png"


def test_discard_ignores_missing_file(tmp_path):
    artifact = tmp_path / "screenshot-1-ab.png"
    storage.discard(artifact)

    artifact.write_bytes(b"x")
    storage.discard(artifact)
    assert not artifact.exists()


def test_discard_logs_delete_failure(tmp_path, caplog):
    # Unlinking a directory fails with an OSError other than FileNotFoundError.
    artifact = tmp_path / "screenshot-1-ab.png"
    artifact.mkdir()

    storage.discard(artifact)

    assert "Failed to clean up screenshot file" in caplog.text
