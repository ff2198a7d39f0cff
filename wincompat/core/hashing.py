# wincompat/core/hashing.py
from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path

from wincompat.core.errors import NotFoundError, OverlayIoError

__all__ = [
    "Digest",
    "CHUNK_SIZE",
    "fingerprint",
    "fingerprintFile",
    "fingerprintFiles",
    "fingerprintSet",
    "verifyFile",
]

# Lower-case hex SHA-256
Digest = str

CHUNK_SIZE = 64 * 1024



def fingerprint(data: bytes) -> Digest:
    """Returns the SHA-256 hex digest of `data`."""
    return hashlib.sha256(data).hexdigest()



def fingerprintFile(path: str | Path) -> Digest:
    """
    Returns a SHA-256 hex digest of the file content.

    Only the bytes count: path, timestamps and permissions never change the result.
    Raises NotFoundError when the file does not exist, OverlayIoError when it can't be read.
    """
    path = Path(path)
    sha = hashlib.sha256()
    try:
        with path.open("rb") as file:
            for chunk in iter(lambda: file.read(CHUNK_SIZE), b""):
                sha.update(chunk)
    except (FileNotFoundError, NotADirectoryError) as err:
        # A file where a parent directory should be: the path can't exist
        raise NotFoundError(path) from err
    except OSError as err:
        raise OverlayIoError(path, "read", err) from err

    return sha.hexdigest()



def fingerprintFiles(paths: Iterable[str | Path]) -> dict[Path, Digest]:
    return {Path(path): fingerprintFile(path) for path in paths}



def fingerprintSet(root: str | Path, relativePaths: Iterable[str | Path]) -> Digest:
    """
    Digest over a defined set of files under `root`.

    Each member contributes "<posix relative path>\\0<content digest>\\n", sorted by path,
    so the result does not depend on iteration order.
    """
    root = Path(root)
    entries = sorted(Path(rel).as_posix() for rel in relativePaths)
    sha = hashlib.sha256()
    for rel in entries:
        sha.update(rel.encode("utf-8"))
        sha.update(b"\0")
        sha.update(fingerprintFile(root / rel).encode("ascii"))
        sha.update(b"\n")
    return sha.hexdigest()



def verifyFile(path: str | Path, expected: Digest) -> bool:
    """True when the file exists and hashes to `expected`. Read errors still propagate."""
    try:
        return fingerprintFile(path) == expected.lower()
    except NotFoundError:
        return False
