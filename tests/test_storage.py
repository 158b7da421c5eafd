import os
import time

import pytest

from imagejobs.errors import PublishError
from imagejobs.storage.publisher import LocalPublisher
from imagejobs.storage.temp_results import TempWorkspace


def test_store_copies_file_and_builds_url(tmp_path):
    publisher = LocalPublisher(str(tmp_path / "uploads"), "http://cdn.example/")
    src = tmp_path / "thumb.png"
    src.write_bytes(b"png-bytes")

    url = publisher.store(str(src), "thumbnails/user-1/thumb.png")

    assert url == "http://cdn.example/uploads/thumbnails/user-1/thumb.png"
    assert (tmp_path / "uploads" / "thumbnails" / "user-1" / "thumb.png").read_bytes() == b"png-bytes"
    # source left in place; the pipeline owns its working directory
    assert src.exists()

    publisher.delete("thumbnails/user-1/thumb.png")
    assert not (tmp_path / "uploads" / "thumbnails" / "user-1" / "thumb.png").exists()


def test_store_rejects_keys_outside_root(tmp_path):
    publisher = LocalPublisher(str(tmp_path / "uploads"), "http://x")
    src = tmp_path / "a.png"
    src.write_bytes(b"x")
    with pytest.raises(PublishError):
        publisher.store(str(src), "../../etc/passwd")


def test_store_missing_source_is_publish_error(tmp_path):
    publisher = LocalPublisher(str(tmp_path / "uploads"), "http://x")
    with pytest.raises(PublishError):
        publisher.store(str(tmp_path / "missing.png"), "thumbnails/u/missing.png")


def test_job_dirs_are_isolated_per_job(tmp_path):
    workspace = TempWorkspace(str(tmp_path / "temp"))
    a = workspace.get_job_dir("job-a")
    b = workspace.get_job_dir("job-b")
    assert a != b
    assert os.path.isdir(a) and os.path.isdir(b)

    workspace.remove_job_dir("job-a")
    assert not os.path.exists(a)
    assert os.path.isdir(b)
    # removing twice is fine
    workspace.remove_job_dir("job-a")


def test_upload_paths_are_unique_and_keep_extension(tmp_path):
    workspace = TempWorkspace(str(tmp_path / "temp"))
    first = workspace.new_upload_path("Photo.JPG")
    second = workspace.new_upload_path("Photo.JPG")
    assert first != second
    assert first.endswith(".jpg")
    assert os.path.dirname(first) == str(tmp_path / "temp" / "uploads")


def test_cleanup_expired_removes_old_work_dirs(tmp_path):
    workspace = TempWorkspace(str(tmp_path / "temp"), ttl_hours=1)
    old = workspace.get_job_dir("old")
    fresh = workspace.get_job_dir("fresh")
    two_hours_ago = time.time() - 7200
    os.utime(old, (two_hours_ago, two_hours_ago))

    assert workspace.cleanup_expired() == 1
    assert not os.path.exists(old)
    assert os.path.isdir(fresh)
