"""Change watching for the token cost cache.

The watcher polls the tree and publishes typed events on an `asyncio.Queue`;
`apply_events` is the only consumer and applies them to the cache one by one.
Between two polls the cache may be stale: `pack` checks each entry against the
file's current stat, so a stale entry is never used for batching.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum, auto
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from prepare_for_llm.config import DEFAULT_MAX_DEPTH, is_classifiable
from prepare_for_llm.file_manipulation import relpath, walk_files
from prepare_for_llm.logging import logger

if TYPE_CHECKING:
    from prepare_for_llm.cache import TokenCostCache
    from prepare_for_llm.ignore import IgnoreRuleSet

DEFAULT_POLL_INTERVAL = 1.0

Stamp = tuple[int, int]


class ChangeKind(StrEnum):
    """Kind of change observed on a file."""

    CREATED = auto()
    MODIFIED = auto()
    DELETED = auto()


class ChangeEvent(BaseModel):
    """A change observed on one file."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    path: Path


def diff_snapshots(before: dict[Path, Stamp], after: dict[Path, Stamp]) -> list[ChangeEvent]:
    """Compare two `(mtime_ns, size)` snapshots of the tree.

    Args:
        before (dict[Path, Stamp]): previous snapshot
        after (dict[Path, Stamp]): current snapshot

    Returns:
        list[ChangeEvent]: created and modified files in path order, then deleted ones
    """
    events: list[ChangeEvent] = []
    for path in sorted(after):
        if path not in before:
            events.append(ChangeEvent(kind=ChangeKind.CREATED, path=path))
        elif before[path] != after[path]:
            events.append(ChangeEvent(kind=ChangeKind.MODIFIED, path=path))
    events.extend(ChangeEvent(kind=ChangeKind.DELETED, path=p) for p in sorted(before.keys() - after.keys()))
    return events


class PollingWatcher:
    """Poll the files under `root` and publish what changed since the last poll.

    Only files the cache would hold are watched: not ignored and with an
    extension.
    """

    def __init__(
        self,
        root: Path,
        rules: IgnoreRuleSet,
        queue: asyncio.Queue[ChangeEvent],
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.root = root
        self.rules = rules
        self.queue = queue
        self.interval = interval
        self.max_depth = max_depth
        self._snapshot: dict[Path, Stamp] | None = None

    def take_snapshot(self) -> dict[Path, Stamp]:
        snapshot: dict[Path, Stamp] = {}
        for path in walk_files(self.root, self.max_depth, self.rules):
            if self.rules.matches(relpath(path, self.root)) or not is_classifiable(path):
                continue
            try:
                st = path.stat()
            except OSError:
                # Vanished between the walk and the stat: reported as deleted if it was known.
                continue
            snapshot[path] = (st.st_mtime_ns, st.st_size)
        return snapshot

    async def prime(self) -> None:
        """Record the current state of the tree without publishing anything."""
        self._snapshot = await asyncio.to_thread(self.take_snapshot)

    async def poll(self) -> list[ChangeEvent]:
        """Take a snapshot, publish the differences with the previous one and return them."""
        current = await asyncio.to_thread(self.take_snapshot)
        events = diff_snapshots(self._snapshot, current) if self._snapshot is not None else []
        self._snapshot = current
        for event in events:
            await self.queue.put(event)
        return events

    async def run(self) -> None:
        """Poll forever, every `interval` seconds. A failed poll is logged and the next one goes ahead."""
        if self._snapshot is None:
            await self.prime()
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.poll()
            except Exception as e:  # noqa: BLE001
                logger.warning("Watcher poll failed under %s: %s", self.root, e)


async def apply_event(event: ChangeEvent, cache: TokenCostCache) -> None:
    """Apply one change event to the cache."""
    if event.kind is ChangeKind.DELETED:
        await cache.invalidate(event.path)
    else:
        await cache.refresh(event.path)


async def apply_events(queue: asyncio.Queue[ChangeEvent], cache: TokenCostCache) -> None:
    """Consume `queue` forever, applying each event to `cache` in arrival order."""
    while True:
        event = await queue.get()
        try:
            await apply_event(event, cache)
        except Exception as e:  # noqa: BLE001
            logger.warning("Could not apply %s event for %s: %s", event.kind, event.path, e)
        finally:
            queue.task_done()
