"""Lock-guarded JSON document store.

Each logical collection lives in ``<data_dir>/<name>.json`` next to a
``<name>.json.lock`` file. ``locked(name)`` gives exclusive access to one
document across coroutines of this process (``asyncio.Lock``) and across
processes sharing the directory (``filelock.FileLock``). A read-modify-write
cycle must happen entirely inside that scope.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from taskboard.exceptions import StorageError
from taskboard.shared.utils.logging import get_logger

logger = get_logger(__name__)


class JsonDocumentStore:
    """Durable storage of JSON documents with scoped exclusive locking."""

    def __init__(self, data_dir: str | Path, lock_timeout: float = 10.0) -> None:
        self.data_dir = Path(data_dir)
        self.lock_timeout = lock_timeout
        self._mutexes: dict[str, asyncio.Lock] = {}

    def document_path(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def lock_path(self, name: str) -> Path:
        return self.data_dir / f"{name}.json.lock"

    @asynccontextmanager
    async def locked(self, name: str) -> AsyncIterator[None]:
        """Hold the exclusive lock for document ``name`` for the enclosed block.

        Raises:
            StorageError: If the lock cannot be acquired within the timeout
        """
        mutex = self._mutexes.setdefault(name, asyncio.Lock())
        async with mutex:
            await asyncio.to_thread(self._ensure_dir)
            lock = FileLock(
                str(self.lock_path(name)),
                timeout=self.lock_timeout,
                thread_local=False,
            )
            try:
                await asyncio.to_thread(lock.acquire)
            except Timeout as e:
                logger.error("store_lock_timeout", document=name, timeout=self.lock_timeout)
                raise StorageError(f"Timed out waiting for lock on '{name}'", e) from e
            try:
                yield
            finally:
                await asyncio.to_thread(lock.release)

    async def read(self, name: str) -> dict[str, Any] | None:
        """Read document ``name``; ``None`` when it has never been written."""
        return await asyncio.to_thread(self._read_sync, name)

    async def write(self, name: str, data: dict[str, Any]) -> None:
        """Atomically replace document ``name`` with ``data``."""
        await asyncio.to_thread(self._write_sync, name, data)

    def _ensure_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self.data_dir}", e) from e

    def _read_sync(self, name: str) -> dict[str, Any] | None:
        path = self.document_path(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Cannot read document '{name}'", e) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Document '{name}' is not valid JSON", e) from e
        if not isinstance(data, dict):
            raise StorageError(f"Document '{name}' must contain a JSON object")
        return data

    def _write_sync(self, name: str, data: dict[str, Any]) -> None:
        self._ensure_dir()
        path = self.document_path(name)
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.data_dir), prefix=f".{name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Cannot write document '{name}'", e) from e
