import os

import pytest

from s4 import transfer
from s4.config import Alias
from s4.errors import ValidationError
from s4.transfer import LocalRef, RemoteRef, classify_ref, copy_or_move

LOCAL = Alias("local", "http://127.0.0.1:9000", "ak", "sk", "us-east-1",
    True)
ALIASES = {"local": LOCAL}

@pytest.fixture
def remote(fake_s3, monkeypatch):
    monkeypatch.setattr(transfer, "Client",
        lambda credentials, transport_config: fake_s3)
    return fake_s3

@pytest.mark.parametrize("value,expected", [
    ("local/bucket/key.txt", RemoteRef(LOCAL, "bucket", "key.txt")),
    ("local/bucket/dir/key.txt", RemoteRef(LOCAL, "bucket", "dir/key.txt")),
    ("local/bucket", LocalRef("local/bucket")),
    ("local/bucket/", LocalRef("local/bucket/")),
    ("other/bucket/key", LocalRef("other/bucket/key")),
    ("/tmp/file.txt", LocalRef("/tmp/file.txt")),
    ("file.txt", LocalRef("file.txt")),
])
def test_classify_ref(value, expected):
    assert classify_ref(ALIASES, value) == expected

def test_copy_source_header():
    assert transfer.copy_source_header("bucket", "dir/a b.txt") == \
        "/bucket/dir/a%20b.txt"

def test_local_to_remote(remote, tmp_file):
    path = tmp_file("a.txt", b"hello")
    copy_or_move(ALIASES, None, path, "local/bucket/a.txt")
    assert remote.buckets["bucket"]["a.txt"].data == b"hello"

def test_local_to_remote_move_removes_source(remote, tmp_file):
    path = tmp_file("a.txt", b"hello")
    copy_or_move(ALIASES, None, path, "local/bucket/a.txt", move=True)
    assert remote.keys("bucket") == ["a.txt"]
    assert not os.path.exists(path)

def test_remote_to_local(remote, tmp_path):
    remote.put("bucket", "dir/a.txt", b"content")
    target = tmp_path / "out" / "a.txt"

    copy_or_move(ALIASES, None, "local/bucket/dir/a.txt", str(target))

    assert target.read_bytes() == b"content"
    assert remote.keys("bucket") == ["dir/a.txt"]

def test_remote_to_local_move(remote, tmp_path):
    remote.put("bucket", "a.txt", b"content")
    target = tmp_path / "a.txt"
    copy_or_move(ALIASES, None, "local/bucket/a.txt", str(target), move=True)
    assert target.read_bytes() == b"content"
    assert remote.keys("bucket") == []

def test_remote_to_remote_is_server_side(remote):
    remote.put("src", "a.txt", b"content", content_type="text/plain")

    copy_or_move(ALIASES, None, "local/src/a.txt", "local/dst/b.txt",
        move=True)

    put = [c for c in remote.calls if c.method == "PUT"][0]
    assert put.headers["x-amz-copy-source"] == "/src/a.txt"
    assert put.body is None
    assert remote.buckets["dst"]["b.txt"].data == b"content"
    assert remote.keys("src") == []

def test_local_to_local(tmp_file, tmp_path):
    path = tmp_file("a.txt", b"data")
    target = tmp_path / "nested" / "b.txt"

    copy_or_move({}, None, path, str(target))

    assert target.read_bytes() == b"data"
    assert (tmp_path / "a.txt").exists()

def test_missing_local_source(tmp_path, remote):
    with pytest.raises(ValidationError):
        copy_or_move(ALIASES, None, str(tmp_path / "missing"),
            "local/bucket/key")
    with pytest.raises(ValidationError):
        copy_or_move(ALIASES, None, str(tmp_path / "missing"),
            str(tmp_path / "other"))
    assert remote.calls == []

def test_local_copy_onto_directory_is_validation_error(tmp_file, tmp_path):
    path = tmp_file("a.txt", b"data")
    target = tmp_path / "existing"
    target.mkdir()

    with pytest.raises(ValidationError, match="cannot copy"):
        copy_or_move({}, None, path, str(target))

def test_local_move_failure_is_validation_error(tmp_file, tmp_path,
        monkeypatch):
    path = tmp_file("a.txt", b"data")

    def deny(src, dst):
        raise PermissionError(13, "Permission denied", src)

    monkeypatch.setattr(transfer.shutil, "move", deny)
    with pytest.raises(ValidationError, match="cannot move"):
        copy_or_move({}, None, path, str(tmp_path / "b.txt"), move=True)
    assert os.path.exists(path)

def test_download_parent_conflict_is_validation_error(remote, tmp_file):
    remote.put("bucket", "a.txt", b"content")
    blocker = tmp_file("blocker", b"")

    with pytest.raises(ValidationError):
        copy_or_move(ALIASES, None, "local/bucket/a.txt",
            os.path.join(blocker, "sub", "a.txt"))
    assert [c.method for c in remote.calls] == []

def test_upload_move_remove_failure_is_validation_error(remote, tmp_file,
        monkeypatch):
    path = tmp_file("a.txt", b"hello")

    def deny(target):
        raise PermissionError(13, "Permission denied", target)

    monkeypatch.setattr(transfer.os, "remove", deny)
    with pytest.raises(ValidationError, match="cannot move"):
        copy_or_move(ALIASES, None, path, "local/bucket/a.txt", move=True)
    assert remote.keys("bucket") == ["a.txt"]
