from __future__ import annotations

import logging
import os
import time
import uuid
from datetime import timedelta

from flask import current_app, url_for
from flask_jwt_extended import create_access_token, decode_token
from werkzeug.utils import secure_filename

from errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

_FILE_TOKEN_TYPE = "file"


def statement_key(user_id: int, filename: str) -> str:
    """Derive the storage key for an uploaded statement file."""
    safe = secure_filename(filename) or "statement"
    stamp = int(time.time() * 1000)
    return f"bank-statements/{user_id}/{stamp}-{uuid.uuid4().hex[:8]}-{safe}"


class LocalObjectStore:
    """
    Object storage rooted at a local directory.
    Paths returned by put() are storage keys relative to the root.
    """

    def __init__(self, root: str, url_ttl_seconds: int = 3600):
        self.root = os.path.abspath(root)
        self.url_ttl_seconds = url_ttl_seconds

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([full, self.root]) != self.root:
            raise StorageError(f"Storage path escapes the storage root: {path}")
        return full

    def put(self, data: bytes, key: str) -> str:
        full = self._full_path(key)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            tmp = f"{full}.part"
            with open(tmp, "wb") as f:
                f.write(data)
            os.replace(tmp, full)
        except OSError as e:
            logger.exception("Storage write failed for %s", key)
            raise StorageError("Could not store uploaded file") from e
        logger.debug("Stored %d bytes at %s", len(data), key)
        return key

    def read(self, path: str) -> bytes:
        full = self._full_path(path)
        if not os.path.exists(full):
            raise NotFoundError(f"Stored file {path} not found")
        try:
            with open(full, "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Could not read stored file {path}") from e

    def delete(self, path: str) -> None:
        full = self._full_path(path)
        try:
            os.remove(full)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Could not delete stored file {path}") from e

    def get(self, path: str) -> str:
        """Return a time-limited URL that serves the stored object."""
        token = create_access_token(
            identity=path,
            additional_claims={"typ": _FILE_TOKEN_TYPE},
            expires_delta=timedelta(seconds=self.url_ttl_seconds),
        )
        return url_for("files.download", token=token, _external=True)

    def resolve_token(self, token: str) -> str:
        try:
            claims = decode_token(token)
        except Exception as e:
            raise NotFoundError("File link is invalid or has expired") from e
        if claims.get("typ") != _FILE_TOKEN_TYPE:
            raise NotFoundError("File link is invalid or has expired")
        return claims["sub"]


def init_object_store(app) -> LocalObjectStore:
    store = LocalObjectStore(
        app.config["UPLOAD_FOLDER"],
        url_ttl_seconds=app.config.get("SIGNED_URL_TTL_SECONDS", 3600),
    )
    app.extensions["object_store"] = store
    return store


def get_object_store() -> LocalObjectStore:
    return current_app.extensions["object_store"]
