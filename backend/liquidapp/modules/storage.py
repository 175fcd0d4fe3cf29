"""Evidence object storage with short-lived signed URLs.

Objects live on the local filesystem under STORAGE_ROOT, keyed
"<siniestro_id>/<name>". Nothing is ever served publicly: both the client
preview and the vision model fetch objects through an HMAC-signed URL that
expires after SIGNED_URL_TTL_SECONDS. A new URL is issued per analysis
request; URLs are never cached alongside the evidence row.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import mimetypes
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from urllib.parse import quote, urlencode

from liquidapp.config import settings
from liquidapp.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+(/[A-Za-z0-9_\-][A-Za-z0-9_.\-]*)+$")


@dataclass(frozen=True)
class StoredObject:
    key: str
    size: int
    modified_at: datetime

    @property
    def content_type(self) -> str:
        return mimetypes.guess_type(self.key)[0] or "application/octet-stream"


def validate_key(key: str) -> str:
    """Reject keys that are not claim-scoped or could escape the storage root."""
    if not key or ".." in key or not _KEY_RE.match(key):
        raise ValidationError(f"Ruta de almacenamiento inválida: {key!r}")
    return key


class LocalObjectStorage:
    def __init__(self, root: str | Path, signing_secret: str, public_base_url: str):
        self.root = Path(root)
        self._secret = signing_secret.encode("utf-8")
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        return self.root / validate_key(key)

    def put(self, key: str, data: bytes) -> StoredObject:
        path = self._path(key)
        if path.exists():
            raise ValidationError(f"El objeto {key} ya existe")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Stored object %s (%d bytes)", key, len(data))
        return self.stat(key)

    def read(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"Objeto {key} no encontrado")
        return path.read_bytes()

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def stat(self, key: str) -> StoredObject:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"Objeto {key} no encontrado")
        st = path.stat()
        return StoredObject(
            key=key,
            size=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.is_file():
            path.unlink()
            logger.info("Deleted object %s", key)

    def list_objects(self, prefix: str = "") -> list[StoredObject]:
        if not self.root.exists():
            return []
        objects = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                objects.append(self.stat(key))
        return objects

    # -- signed URLs ---------------------------------------------------------

    def _signature(self, key: str, expires: int) -> str:
        msg = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self._secret, msg, hashlib.sha256).hexdigest()

    def create_signed_url(self, key: str, expires_in: int | None = None, now: float | None = None) -> str:
        """Issue a URL for *key* valid for *expires_in* seconds (default 1 h)."""
        if not self.exists(key):
            raise NotFoundError(f"Objeto {key} no encontrado")
        ttl = expires_in if expires_in is not None else settings.SIGNED_URL_TTL_SECONDS
        expires = int((now if now is not None else time.time()) + ttl)
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self.public_base_url}/api/v1/storage/objects/{quote(key)}?{query}"

    def verify_signature(self, key: str, expires: int, signature: str, now: float | None = None) -> bool:
        if (now if now is not None else time.time()) > expires:
            return False
        return hmac.compare_digest(self._signature(key, expires), signature or "")


@lru_cache(maxsize=1)
def get_storage() -> LocalObjectStorage:
    return LocalObjectStorage(
        settings.STORAGE_ROOT, settings.STORAGE_SIGNING_SECRET, settings.PUBLIC_BASE_URL
    )
