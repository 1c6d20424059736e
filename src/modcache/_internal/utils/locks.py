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

"""Advisory locking for the persisted cache index."""

from __future__ import annotations

import importlib
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Final, Protocol, cast

if TYPE_CHECKING:
    from io import BufferedRandom
    from pathlib import Path

__all__ = ["LOCK_SUFFIX", "file_lock", "lock_path_for"]

logger: logging.Logger = logging.getLogger("modcache.cache")

LOCK_SUFFIX: Final[str] = ".lock"
_RETRY_DELAY_S: Final[float] = 0.05


class _Flock(Protocol):
    LOCK_EX: int
    LOCK_UN: int

    def flock(self, fd: int, operation: int) -> None: ...


class _Locking(Protocol):
    LK_LOCK: int
    LK_UNLCK: int

    def locking(self, fd: int, mode: int, size: int) -> None: ...


def _platform_module(name: str) -> object | None:
    try:  # pragma: no cover - platform dependent
        return importlib.import_module(name)
    except ImportError:  # pragma: no cover - platform dependent
        return None


_posix = cast("_Flock | None", _platform_module("fcntl"))
_windows = cast("_Locking | None", _platform_module("msvcrt"))


def lock_path_for(target: Path) -> Path:
    """Return the sidecar lock file guarding target."""
    return target.with_name(target.name + LOCK_SUFFIX)


def _acquire(handle: BufferedRandom) -> None:
    if _posix is not None:
        _posix.flock(handle.fileno(), _posix.LOCK_EX)
        return
    if _windows is not None:  # pragma: no cover - platform dependent
        while True:
            try:
                _windows.locking(handle.fileno(), _windows.LK_LOCK, 1)
            except OSError:
                time.sleep(_RETRY_DELAY_S)
            else:
                return


def _release(handle: BufferedRandom) -> None:
    if _posix is not None:
        _posix.flock(handle.fileno(), _posix.LOCK_UN)
    elif _windows is not None:  # pragma: no cover - platform dependent
        _ = handle.seek(0)
        _windows.locking(handle.fileno(), _windows.LK_UNLCK, 1)


@contextmanager
def file_lock(target: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on target's sidecar lock file.

    Platforms without fcntl or msvcrt get no locking at all; writers
    still replace files atomically.
    """
    lock_path = lock_path_for(target.resolve())
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+b") as handle:
        _acquire(handle)
        logger.debug("Locked %s", lock_path.name)
        try:
            yield
        finally:
            _release(handle)
