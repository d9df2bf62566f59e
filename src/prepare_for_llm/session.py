from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Self

from prepare_for_llm.batching import BatchResult, pack
from prepare_for_llm.cache import TokenCostCache
from prepare_for_llm.file_manipulation import walk_files
from prepare_for_llm.ignore import IgnoreRuleSet, load_ignore_rules
from prepare_for_llm.logging import logger
from prepare_for_llm.selection import candidate_files, remaining_tokens
from prepare_for_llm.tokenizer import tiktoken_counter
from prepare_for_llm.watcher import ChangeEvent, PollingWatcher, apply_events

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from prepare_for_llm.settings import Settings
    from prepare_for_llm.tokenizer import TokenCounter


class Session:
    """Owns the ignore rules, the token cost cache and the watcher of one project.

    Use it as an async context manager: entering loads the rules, builds the
    cache and (with `watch=True`) starts the watcher and its consumer; leaving
    stops them and drops the cache.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        counter: TokenCounter | None = None,
        watch: bool = False,
    ) -> None:
        self.settings = settings
        self.root = Path(settings.repo).resolve()
        self.counter = counter or tiktoken_counter(settings.encoding)
        self.watch = watch
        self.rules = IgnoreRuleSet()
        self.cache = TokenCostCache(self.counter)
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.watcher: PollingWatcher | None = None
        self._tasks: list[asyncio.Task[None]] = []

    async def start(self) -> None:
        self.rules = load_ignore_rules(self.root, self.settings.ignore_file)
        await self.cache.build(self.root, self.rules, max_depth=self.settings.max_depth)
        if self.watch:
            self.watcher = PollingWatcher(
                self.root,
                self.rules,
                self.queue,
                interval=self.settings.poll_interval,
                max_depth=self.settings.max_depth,
            )
            await self.watcher.prime()
            self._tasks = [
                asyncio.create_task(self.watcher.run(), name="prepare_for_llm.watcher"),
                asyncio.create_task(apply_events(self.queue, self.cache), name="prepare_for_llm.cache_updater"),
            ]

    async def stop(self) -> None:
        """Cancel the watcher tasks and drop the cache, even if a task had died."""
        for task in self._tasks:
            task.cancel()
        try:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for task, result in zip(self._tasks, results, strict=True):
                if isinstance(result, Exception):
                    logger.warning("Task %s had failed: %s", task.get_name(), result)
        finally:
            self._tasks = []
            self.watcher = None
            self.cache.clear()
        logger.info("Session closed for %s", self.root)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def sync(self) -> None:
        """Poll once and apply every pending change, for callers that cannot wait for the watcher."""
        if self.watcher is None:
            return
        await self.watcher.poll()
        await self.queue.join()

    def all_files(self) -> list[Path]:
        return walk_files(self.root, self.settings.max_depth)

    def candidates(self) -> list[Path]:
        return candidate_files(self.cache, self.root, self.rules)

    def remaining_tokens(self, selected: Sequence[Path | str]) -> int:
        return remaining_tokens(self.cache, selected, self.settings.token_limit)

    def pack(self, selected: Sequence[Path | str]) -> BatchResult:
        return pack(
            selected,
            exclusions=self.settings.exclusions,
            cache=self.cache,
            token_limit=self.settings.token_limit,
            size_cap_bytes=self.settings.size_cap_bytes,
            counter=self.counter,
        )
