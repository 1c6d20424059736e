# Copyright 2025 CrownOps Engineering
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Content fingerprints for files, directory trees and ordered digest sets.

Every function here is pure with respect to file-system state at call time.
Symbolic links are resolved before reading, so a link pointing at unchanged
content produces the same digest as the content itself.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Final

from modcache._internal.exceptions import HashingError
from modcache.core.type_aliases import Digest

__all__ = ["combine", "hash_bytes", "hash_of", "hash_text"]

_DIGEST_SIZE: Final[int] = 16
_CHUNK_SIZE: Final[int] = 8192
_SEPARATOR: Final[bytes] = b"\x00"


def _new_hasher() -> hashlib.blake2b:
    return hashlib.blake2b(digest_size=_DIGEST_SIZE)


def hash_bytes(data: bytes) -> Digest:
    """Return the digest of an in-memory byte string."""
    hasher = _new_hasher()
    hasher.update(data)
    return Digest(hasher.hexdigest())


def hash_text(text: str) -> Digest:
    """Return the digest of ``text`` encoded as UTF-8."""
    return hash_bytes(text.encode("utf-8"))


def hash_of(path: Path) -> Digest:
    """Fingerprint a file or directory tree by content.

    Files hash their bytes. Directories hash the ordered combination of
    ``(name, digest)`` for every child, sorted by name, so renames and
    additions register as changes while timestamps do not.

    Args:
        path: File or directory to fingerprint. Symlinks are followed.

    Returns:
        Hex digest of the content.

    Raises:
        HashingError: If the path is missing or unreadable.
    """
    try:
        resolved = path.resolve(strict=True)
    except FileNotFoundError as exc:
        raise HashingError(path, "file not found") from exc
    except (OSError, RuntimeError) as exc:
        raise HashingError(path, str(exc)) from exc
    if resolved.is_dir():
        return _hash_directory(resolved, seen=frozenset({resolved}))
    return _hash_file(resolved, origin=path)


def _hash_file(path: Path, *, origin: Path) -> Digest:
    hasher = _new_hasher()
    try:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                hasher.update(chunk)
    except FileNotFoundError as exc:
        raise HashingError(origin, "file not found") from exc
    except OSError as exc:
        raise HashingError(origin, exc.strerror or str(exc)) from exc
    return Digest(hasher.hexdigest())


def _hash_directory(path: Path, *, seen: frozenset[Path]) -> Digest:
    parts: list[Digest] = []
    try:
        names = sorted(os.listdir(path))
    except OSError as exc:
        raise HashingError(path, exc.strerror or str(exc)) from exc
    for name in names:
        child = path / name
        try:
            resolved = child.resolve(strict=True)
        except FileNotFoundError as exc:
            raise HashingError(child, "file not found") from exc
        if resolved.is_dir():
            # Linked directory cycles contribute their name only.
            child_digest = (
                hash_text(name) if resolved in seen else _hash_directory(resolved, seen=seen | {resolved})
            )
        else:
            child_digest = _hash_file(resolved, origin=child)
        parts.append(combine(hash_text(name), child_digest))
    return combine(*parts)


def combine(*digests: Digest) -> Digest:
    """Combine digests into one order-sensitive aggregate ("hash of hashes").

    Args:
        *digests: Digests in significant order.

    Returns:
        Digest over the sequence. Reordering the inputs changes the result.
    """
    hasher = _new_hasher()
    hasher.update(str(len(digests)).encode("ascii"))
    for digest in digests:
        hasher.update(_SEPARATOR)
        hasher.update(digest.encode("ascii"))
    return Digest(hasher.hexdigest())
