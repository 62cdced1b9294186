"""Local filesystem blob store.

Used for development and tests. Temporary read handles are
``local://<key>?token=<jwt>`` strings signed with the application secret;
``open_read_handle`` resolves them back to content while they are valid.
"""

import calendar
import os
from datetime import timedelta
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, quote, urlsplit

from jose import JWTError, jwt

from medilocker.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    TransientCollaboratorError,
    ValidationError,
)
from medilocker.storage.base import BlobStore, StoredBlob
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)

HANDLE_SCHEME = "local://"
CONTENT_TYPE_SUFFIX = ".content-type"


class LocalBlobStore(BlobStore):
    """Blob store writing files under a base directory."""

    def __init__(
        self,
        base_path: str,
        signing_key: str,
        algorithm: str = "HS256",
        clock: Clock = utcnow,
        max_attempts: int = 3,
        timeout_seconds: float = 10.0,
    ):
        """Initialize the store, creating the base directory."""
        super().__init__(max_attempts=max_attempts, timeout_seconds=timeout_seconds)
        self.base_path = Path(base_path)
        self.signing_key = signing_key
        self.algorithm = algorithm
        self.clock = clock
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _sanitize_key(self, key: str) -> str:
        """Normalise a key so it cannot escape the base path."""
        if not key or os.path.isabs(key):
            raise ValidationError(f"Invalid storage key: {key!r}")
        parts = [part for part in key.replace("\\", "/").split("/") if part]
        if any(part in (".", "..") or part.startswith("~") for part in parts):
            raise ValidationError(f"Invalid storage key: {key!r}")
        return "/".join(parts)

    def _path_for(self, key: str) -> Path:
        return self.base_path.joinpath(*self._sanitize_key(key).split("/"))

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".tmp")
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
            path.with_name(path.name + CONTENT_TYPE_SUFFIX).write_text(
                content_type, encoding="utf-8"
            )
        except OSError as e:
            raise TransientCollaboratorError(f"Failed to write {key}: {e}") from e

    def get(self, key: str) -> StoredBlob:
        path = self._path_for(key)
        if not path.is_file():
            raise NotFoundError(f"No content stored under {key}")
        type_path = path.with_name(path.name + CONTENT_TYPE_SUFFIX)
        content_type = (
            type_path.read_text(encoding="utf-8")
            if type_path.is_file()
            else "application/octet-stream"
        )
        return StoredBlob(key=key, data=path.read_bytes(), content_type=content_type)

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def get_temporary_read_handle(
        self, key: str, ttl_seconds: int, file_name: Optional[str] = None
    ) -> str:
        """Sign a handle for ``key`` valid for ``ttl_seconds``."""
        key = self._sanitize_key(key)
        expires_at = self.clock() + timedelta(seconds=ttl_seconds)
        claims = {"key": key, "exp": calendar.timegm(expires_at.utctimetuple())}
        if file_name:
            claims["filename"] = file_name
        token = jwt.encode(claims, self.signing_key, algorithm=self.algorithm)
        return f"{HANDLE_SCHEME}{quote(key)}?token={token}"

    def open_read_handle(self, handle: str) -> StoredBlob:
        """Resolve a handle produced by ``get_temporary_read_handle``.

        Raises:
            AuthorizationError: if the handle is malformed, tampered with or
                has lapsed
        """
        if not handle.startswith(HANDLE_SCHEME):
            raise AuthorizationError("Invalid read handle.")
        token = parse_qs(urlsplit(handle).query).get("token", [""])[0]
        try:
            claims = jwt.decode(
                token,
                self.signing_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise AuthorizationError("Invalid read handle.") from e
        # Expiry is judged by this store's clock
        if claims.get("exp", 0) <= calendar.timegm(self.clock().utctimetuple()):
            raise AuthorizationError("Read handle has expired.")
        return self.get(claims["key"])
