"""Session identity for multipart copy uploads.

Every message that refers to the same logical upload (bucket, key, upload
id) must address the same part store partition. The session id is a SHA-256
digest over the length-prefixed components, so no two distinct triples map
to the same id even when a component contains the separator.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from partcopy.errors import ProtocolError


@dataclass(frozen=True)
class SessionKey:
    """Identity of one upload session.

    Attributes:
        bucket: Source bucket name.
        key: Object key (used for both the source and destination object).
        upload_id: Upload id assigned by the destination service.
        id: Stable hex digest identifying the session in the part store.
    """

    bucket: str
    key: str
    upload_id: str
    id: str

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}/{self.upload_id}"


def session_id(bucket: str, key: str, upload_id: str) -> str:
    """Return the stable session id for a (bucket, key, upload_id) triple."""
    h = hashlib.sha256()
    for part in (bucket, key, upload_id):
        encoded = part.encode("utf-8")
        h.update(len(encoded).to_bytes(8, "big"))
        h.update(encoded)
    return h.hexdigest()


def resolve_session(bucket: str, key: str, upload_id: str) -> SessionKey:
    """Resolve the session identity for an upload.

    Raises:
        ProtocolError: If any component is missing or empty.
    """
    if not bucket or not key or not upload_id:
        raise ProtocolError("bucket, key and uploadId are required to address a session")
    return SessionKey(
        bucket=bucket,
        key=key,
        upload_id=upload_id,
        id=session_id(bucket, key, upload_id),
    )
