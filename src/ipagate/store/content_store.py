from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, Iterator, Optional, Union

from ..errors import DuplicateContentError, StoreError, UploadTooLargeError

CHUNK_SIZE = 64 * 1024
TMP_PREFIX = ".uploading."
DIGEST_RE = re.compile(r"^[0-9a-f]{40}$")

UploadStream = Union[IO[bytes], Iterable[bytes]]


@dataclass(frozen=True)
class StoredObject:
    digest: str
    path: Path
    size: int


def iter_chunks(stream: UploadStream, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield byte chunks from a binary file object or an iterable of chunks."""
    read = getattr(stream, "read", None)
    if read is None:
        yield from stream  # type: ignore[misc]
        return
    while chunk := read(chunk_size):
        yield chunk


class PendingObject:
    """A temporary file being filled while its SHA-1 is accumulated."""

    def __init__(self, store: "ContentStore", fh: IO[bytes]):
        self._store = store
        self._fh = fh
        self._sha1 = hashlib.sha1()
        self.size = 0
        self.committed: Optional[StoredObject] = None

    @property
    def tmp_path(self) -> Path:
        return Path(self._fh.name)

    def write(self, chunk: bytes) -> None:
        if self.committed is not None:
            raise StoreError("write after commit")
        self.size += len(chunk)
        if self._store.max_bytes is not None and self.size > self._store.max_bytes:
            raise UploadTooLargeError(f"upload exceeds {self._store.max_bytes} bytes")
        try:
            self._fh.write(chunk)
        except OSError as e:
            raise StoreError(f"copy to tmpfile: {e}") from e
        self._sha1.update(chunk)

    def commit(self) -> StoredObject:
        """Move the temporary file to <root>/<sha1-hex> without overwriting."""
        try:
            self._fh.flush()
            os.fsync(self._fh.fileno())
            self._fh.close()
        except OSError as e:
            raise StoreError(f"copy to tmpfile: {e}") from e
        digest = self._sha1.hexdigest()
        target = self._store.path_for(digest)
        # link() refuses to replace an existing name, which settles same-digest races
        try:
            os.link(self.tmp_path, target)
        except FileExistsError as e:
            raise DuplicateContentError(f"{target} is already exists") from e
        except OSError as e:
            raise StoreError(f"failed to rename tmpfile: {e}") from e
        self.committed = StoredObject(digest=digest, path=target, size=self.size)
        return self.committed


class ContentStore:
    def __init__(self, root: Path, tmp_dir: Optional[Path] = None, max_bytes: Optional[int] = None):
        self.root = Path(root)
        self.tmp_dir = Path(tmp_dir) if tmp_dir is not None else self.root
        self.max_bytes = max_bytes

    def path_for(self, digest: str) -> Path:
        if not DIGEST_RE.match(digest):
            raise ValueError(f"not a sha1 hex digest: {digest!r}")
        return self.root / digest

    @contextmanager
    def pending(self) -> Iterator[PendingObject]:
        """Open a temporary upload; it is removed on every exit path."""
        try:
            fh = tempfile.NamedTemporaryFile(dir=self.tmp_dir, prefix=TMP_PREFIX, delete=False)
        except OSError as e:
            raise StoreError(f"create tmpfile: {e}") from e
        obj = PendingObject(self, fh)
        try:
            yield obj
        finally:
            fh.close()
            try:
                obj.tmp_path.unlink(missing_ok=True)
            except OSError as e:  # pragma: no cover - IO
                logging.warning("Failed to remove tmpfile %s: %s", obj.tmp_path, e)

    def put(self, stream: UploadStream) -> StoredObject:
        with self.pending() as obj:
            for chunk in iter_chunks(stream):
                obj.write(chunk)
            return obj.commit()
