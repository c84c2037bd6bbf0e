from __future__ import annotations

import zipfile
import zlib
from pathlib import Path

from ..errors import ArchiveError

MANIFEST_SUFFIX = "embedded.mobileprovision"

# zipfile surfaces corrupt members through several exception types
_MEMBER_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, OSError, NotImplementedError, RuntimeError)


class Archive:
    """Read-only view over a zip archive stored on disk."""

    def __init__(self, zf: zipfile.ZipFile, path: Path):
        self._zf = zf
        self.path = path

    def __enter__(self) -> "Archive":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._zf.close()

    def manifest_members(self, suffix: str = MANIFEST_SUFFIX) -> list[zipfile.ZipInfo]:
        """Every file member whose name ends with ``suffix``, in archive order."""
        return [i for i in self._zf.infolist() if not i.is_dir() and i.filename.endswith(suffix)]

    def read_member(self, info: zipfile.ZipInfo, limit: int | None = None) -> bytes:
        if limit is not None and info.file_size > limit:
            raise ArchiveError(f"open file in zip: {info.filename} declares {info.file_size} bytes (limit {limit})")
        try:
            with self._zf.open(info) as fh:
                # Declared sizes are attacker controlled; cap the actual read too
                data = fh.read(limit + 1) if limit is not None else fh.read()
        except _MEMBER_ERRORS as e:
            raise ArchiveError(f"open file in zip: {info.filename} {e}") from e
        if limit is not None and len(data) > limit:
            raise ArchiveError(f"open file in zip: {info.filename} exceeds {limit} bytes")
        return data


def open_archive(path: Path | str) -> Archive:
    path = Path(path)
    try:
        zf = zipfile.ZipFile(path)
    except (zipfile.BadZipFile, zlib.error, EOFError, ValueError) as e:
        raise ArchiveError(f"open zip: {e}") from e
    except OSError as e:
        raise ArchiveError(f"open zip: {path}: {e}") from e
    return Archive(zf, path)
