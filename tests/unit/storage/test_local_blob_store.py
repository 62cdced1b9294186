"""Tests for the local filesystem blob store."""

import pytest

from medilocker.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    TransientCollaboratorError,
    ValidationError,
)
from medilocker.storage.base import build_storage_key, compute_checksum
from medilocker.storage.local_backend import LocalBlobStore
from tests.helpers import TEST_SECRET

KEY = "records/patient-1/rec-1/ver-1.pdf"


class TestStorageKeys:
    """Key and checksum helpers."""

    def test_build_storage_key(self):
        """Keys follow the records/<patient>/<record>/<version>.<ext> layout."""
        assert build_storage_key("p", "r", "v", ".PDF") == "records/p/r/v.pdf"
        assert build_storage_key("p", "r", "v", "") == "records/p/r/v.bin"

    def test_checksum(self):
        """Checksums are SHA-256 hex digests."""
        assert compute_checksum(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )


class TestLocalBlobStore:
    """Storing and reading content."""

    def test_put_and_get(self, blob_store):
        """Content and its type survive a round trip."""
        assert blob_store.put(KEY, b"scan", "image/png") == KEY

        stored = blob_store.get(KEY)
        assert stored.data == b"scan"
        assert stored.content_type == "image/png"
        assert blob_store.exists(KEY)

    def test_missing_key(self, blob_store):
        """Reading an absent key fails."""
        assert not blob_store.exists(KEY)
        with pytest.raises(NotFoundError):
            blob_store.get(KEY)

    @pytest.mark.parametrize("key", ["../escape.pdf", "/etc/passwd", "records/~/x", ""])
    def test_rejects_unsafe_keys(self, blob_store, key):
        """Keys cannot escape the base directory."""
        with pytest.raises(ValidationError):
            blob_store.put(key, b"x", "text/plain")

    def test_write_failures_are_retried(self, tmp_path, clock, monkeypatch):
        """Transient write errors are retried up to the attempt limit."""
        store = LocalBlobStore(
            base_path=str(tmp_path / "retry"), signing_key=TEST_SECRET, clock=clock
        )
        calls = []
        original = store._put

        def flaky(key, data, content_type):
            calls.append(key)
            if len(calls) < 3:
                raise TransientCollaboratorError("disk busy")
            original(key, data, content_type)

        monkeypatch.setattr(store, "_put", flaky)
        store.put(KEY, b"scan", "image/png")

        assert len(calls) == 3
        assert store.get(KEY).data == b"scan"

    def test_gives_up_after_max_attempts(self, tmp_path, clock, monkeypatch):
        """Persistent failures surface after the last attempt."""
        store = LocalBlobStore(
            base_path=str(tmp_path / "down"),
            signing_key=TEST_SECRET,
            clock=clock,
            max_attempts=2,
        )
        calls = []

        def down(key, data, content_type):
            calls.append(key)
            raise TransientCollaboratorError("disk gone")

        monkeypatch.setattr(store, "_put", down)
        with pytest.raises(TransientCollaboratorError):
            store.put(KEY, b"scan", "image/png")
        assert len(calls) == 2


class TestReadHandles:
    """Signed temporary read handles."""

    def test_handle_resolves_until_expiry(self, blob_store, clock):
        """Handles work inside their time to live only."""
        blob_store.put(KEY, b"scan", "image/png")
        handle = blob_store.get_temporary_read_handle(KEY, 60, file_name="scan.png")

        assert handle.startswith("local://")
        assert blob_store.open_read_handle(handle).data == b"scan"

        clock.advance(seconds=61)
        with pytest.raises(AuthorizationError):
            blob_store.open_read_handle(handle)

    def test_tampered_handle(self, blob_store):
        """Handles signed with another key are rejected."""
        blob_store.put(KEY, b"scan", "image/png")
        handle = blob_store.get_temporary_read_handle(KEY, 60)

        with pytest.raises(AuthorizationError):
            blob_store.open_read_handle(handle[:-4] + "AAAA")
        with pytest.raises(AuthorizationError):
            blob_store.open_read_handle("https://example.org/" + KEY)

    def test_foreign_signing_key(self, blob_store, tmp_path, clock):
        """A store only honours its own handles."""
        blob_store.put(KEY, b"scan", "image/png")
        other = LocalBlobStore(
            base_path=str(tmp_path / "blobs"), signing_key="another-secret", clock=clock
        )

        with pytest.raises(AuthorizationError):
            other.open_read_handle(blob_store.get_temporary_read_handle(KEY, 60))
