"""Token cost cache: rendered-block token counts keyed by absolute file path."""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from prepare_for_llm.config import DEFAULT_MAX_DEPTH, is_classifiable
from prepare_for_llm.exceptions import UnreadableFileError
from prepare_for_llm.file_manipulation import relpath, render_file, walk_files
from prepare_for_llm.logging import logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from prepare_for_llm.ignore import IgnoreRuleSet
    from prepare_for_llm.tokenizer import TokenCounter

DEFAULT_MAX_CONCURRENCY = 32


class CacheEntry(BaseModel):
    """Token cost of one file, stamped with the stat it was computed from."""

    model_config = ConfigDict(frozen=True)

    tokens: int = Field(..., ge=0, description="Token count of the rendered block")
    size: int = Field(..., ge=0, description="File size in bytes when computed")
    mtime_ns: int = Field(..., description="File mtime (ns) when computed")

    def matches(self, size: int, mtime_ns: int) -> bool:
        return self.size == size and self.mtime_ns == mtime_ns


class TokenCostCache:
    """Map of absolute path -> token cost of the file's rendered block.

    Entries are immutable and replaced whole, so a reader sees either the old
    or the new entry for a key. Writers to the same key are serialised by a
    per-key lock; writers to different keys run concurrently.
    """

    def __init__(self, counter: TokenCounter, *, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        self.counter = counter
        self.max_concurrency = max_concurrency
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @staticmethod
    def key(path: Path | str) -> str:
        return str(path)

    @contextlib.asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        """Hold the lock of `key`. The lock is dropped once its last user is done."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users.pop(key, 1) - 1
            if users:
                self._lock_users[key] = users
            elif self._locks.get(key) is lock:
                del self._locks[key]

    # ------------------------------ reads ------------------------------------

    def get(self, path: Path | str) -> CacheEntry | None:
        return self._entries.get(self.key(path))

    def tokens_for(self, path: Path | str) -> int | None:
        entry = self.get(path)
        return entry.tokens if entry is not None else None

    def lookup_fresh(self, path: Path | str, size: int, mtime_ns: int) -> int | None:
        """Return the cached cost only if it was computed from this exact size and mtime."""
        entry = self.get(path)
        if entry is None or not entry.matches(size, mtime_ns):
            return None
        return entry.tokens

    def paths(self) -> list[str]:
        return sorted(self._entries)

    def snapshot(self) -> dict[str, int]:
        return {k: e.tokens for k, e in self._entries.items()}

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and self.key(path) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths())

    # ------------------------------ writes -----------------------------------

    def compute(self, path: Path) -> CacheEntry:
        """Render `path` and count its tokens, without touching the cache.

        Raises:
            UnreadableFileError: if the file cannot be statted or read
        """
        try:
            st = path.stat()
        except OSError as e:
            raise UnreadableFileError(path=path, reason=str(e)) from e
        tokens = self.counter(render_file(path))
        return CacheEntry(tokens=tokens, size=st.st_size, mtime_ns=st.st_mtime_ns)

    async def refresh(self, path: Path | str) -> CacheEntry | None:
        """Re-read, re-render and re-store the cost of `path`.

        A file that can no longer be read is dropped from the cache instead.

        Returns:
            CacheEntry | None: the new entry, or None if the file was dropped
        """
        key = self.key(path)
        async with self._locked(key):
            try:
                entry = await asyncio.to_thread(self.compute, Path(path))
            except UnreadableFileError as e:
                logger.warning("Could not read file, dropping it from the cache: %s", e)
                self._entries.pop(key, None)
                return None
            self._entries[key] = entry
            return entry

    async def invalidate(self, path: Path | str) -> bool:
        """Remove the entry of `path`.

        Returns:
            bool: True if an entry was removed
        """
        key = self.key(path)
        async with self._locked(key):
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry, and the locks no writer is holding or waiting on."""
        self._entries = {}
        self._locks = {k: lock for k, lock in self._locks.items() if k in self._lock_users}

    async def build(
        self,
        root: Path,
        rules: IgnoreRuleSet,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> int:
        """Walk `root` once and cache the cost of every eligible file.

        Ignored files and files without an extension are left out. Files are
        read and counted concurrently; unreadable ones are skipped with a
        warning. The previous content of the cache is replaced.

        Args:
            root (Path): the project root
            rules (IgnoreRuleSet): the ignore rules of the project
            max_depth (int): maximum directory depth of the walk

        Returns:
            int: the number of cached files
        """
        files = await asyncio.to_thread(walk_files, root, max_depth, rules)
        eligible = [f for f in files if not rules.matches(relpath(f, root)) and is_classifiable(f)]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def one(path: Path) -> tuple[str, CacheEntry] | None:
            async with semaphore:
                try:
                    entry = await asyncio.to_thread(self.compute, path)
                except UnreadableFileError as e:
                    logger.warning("Could not read file %s due to error: %s", path, e.reason)
                    return None
                return self.key(path), entry

        results = await asyncio.gather(*(one(f) for f in eligible))
        self._entries = dict(r for r in results if r is not None)
        logger.info("Caching complete: %d files cached under %s", len(self._entries), root)
        return len(self._entries)
