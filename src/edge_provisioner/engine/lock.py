"""Advisory run lock."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import IO, TYPE_CHECKING

from edge_provisioner.errors import RunLockError

if TYPE_CHECKING:
    from types import TracebackType

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def _lock(fh: IO[str]) -> None:
    if fcntl is not None:
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        return
    import msvcrt  # pragma: no cover

    fh.seek(0)  # pragma: no cover
    msvcrt.locking(fh.fileno(), msvcrt.LK_NBLCK, 1)  # pragma: no cover


def _unlock(fh: IO[str]) -> None:
    if fcntl is not None:
        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        return
    import msvcrt  # pragma: no cover

    fh.seek(0)  # pragma: no cover
    msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)  # pragma: no cover


def _holder(fh: IO[str]) -> str:
    try:
        fh.seek(0)
        return fh.read().strip()
    except OSError:
        return ""


class RunLock:
    """Exclusive, non-blocking lock serializing deployments on one host.

    The holder records its pid in the lock file.  A second process fails fast
    with ``RunLockError`` naming that pid instead of waiting for it.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._fh: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._fh is not None

    def __enter__(self) -> RunLock:
        if fcntl is None and sys.platform != "win32":  # pragma: no cover
            raise RunLockError("Run locking is not supported on this platform")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fh = self.path.open("a+", encoding="utf-8")
        try:
            _lock(fh)
        except OSError as e:
            pid = _holder(fh)
            fh.close()
            held_by = f" (held by pid {pid})" if pid else ""
            raise RunLockError(f"Could not lock {self.path}{held_by}: {e}") from e

        fh.seek(0)
        fh.truncate()
        fh.write(f"{os.getpid()}\n")
        fh.flush()
        self._fh = fh
        logger.debug("Acquired run lock %s", self.path)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            fh.seek(0)
            fh.truncate()
            _unlock(fh)
        finally:
            fh.close()
        logger.debug("Released run lock %s", self.path)
