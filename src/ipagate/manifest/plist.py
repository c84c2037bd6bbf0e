from __future__ import annotations

import plistlib
from typing import Any
from xml.parsers.expat import ExpatError

from ..errors import ManifestDecodeError


def decode_manifest(payload: bytes) -> dict[str, Any]:
    """Parse an XML or binary property list whose root is a dictionary.

    Values come back as plistlib produces them: str, int, float, bool, bytes,
    datetime, list and dict.
    """
    try:
        tree = plistlib.loads(payload)
    except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError, OverflowError, RecursionError) as e:
        raise ManifestDecodeError(f"failed to parse mobileprovision: plist unmarshal error: {e}") from e
    if not isinstance(tree, dict):
        raise ManifestDecodeError(
            f"failed to parse mobileprovision: root is {type(tree).__name__}, not a dictionary"
        )
    return tree
