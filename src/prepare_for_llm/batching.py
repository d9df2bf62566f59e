"""Greedy, order-preserving packing of selected files into token-bounded batches.

Each selected file is rendered as a fenced block and appended to the current
batch; when the next block would push the running total over the limit, the
current batch is closed first. A file whose block alone exceeds the limit ends
up alone in its batch. The first batch is prefixed with a preamble naming the
languages seen, then every batch is counted again as a whole: batches still
over the limit are reported in `BatchResult.over_budget` and never emitted.
"""

from __future__ import annotations

import stat
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from prepare_for_llm.config import (
    DEFAULT_EXCLUSIONS,
    DEFAULT_SIZE_CAP_BYTES,
    DEFAULT_TOKEN_LIMIT,
    VIRTUAL_BUFFER_PREFIX,
    classify,
    file_extension,
)
from prepare_for_llm.exceptions import BatchingError, InputTooLargeError, UnreadableFileError
from prepare_for_llm.file_manipulation import read_source, render_block
from prepare_for_llm.logging import logger
from prepare_for_llm.output_construction import build_preamble

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from prepare_for_llm.cache import TokenCostCache
    from prepare_for_llm.tokenizer import TokenCounter


class Batch(BaseModel):
    """One output document.

    Attributes:
        index: Position of the batch among all batches of the run.
        paths: Files rendered in the batch, in order.
        text: Full document text (preamble included for the first batch).
        running_tokens: Sum of the per-file costs used while packing.
        tokens: Token count of `text` as a whole.
        over_budget: Whether `tokens` exceeds the token limit.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    paths: tuple[str, ...] = Field(default=())
    text: str
    running_tokens: int = Field(..., ge=0)
    tokens: int = Field(..., ge=0)
    over_budget: bool = False


class BatchResult(BaseModel):
    """Outcome of a packing run.

    Attributes:
        batches: Batches within budget, in order. These are the ones to emit.
        over_budget: Batches whose full text exceeds the limit, never emitted.
        total_tokens: Sum of the costs of every processed file.
        languages: Distinct language names, in first-seen order.
        processed: Paths that made it into a batch, in order (duplicates kept).
        token_limit: The limit the batches were packed against.
    """

    model_config = ConfigDict(frozen=True)

    batches: tuple[Batch, ...] = ()
    over_budget: tuple[Batch, ...] = ()
    total_tokens: int = 0
    languages: tuple[str, ...] = ()
    processed: tuple[str, ...] = ()
    token_limit: int = DEFAULT_TOKEN_LIMIT

    @property
    def all_batches(self) -> list[Batch]:
        """Every batch built, emitted or not, in order."""
        return sorted([*self.batches, *self.over_budget], key=lambda b: b.index)


def is_excluded(path: str, exclusions: Collection[str]) -> bool:
    """Check if any exclusion substring occurs in `path`."""
    return any(ex in path for ex in exclusions)


def is_virtual_buffer(path: str) -> bool:
    """Check if `path` names an unsaved editor buffer rather than a file."""
    return path.startswith(VIRTUAL_BUFFER_PREFIX)


def pack(  # noqa: C901, PLR0912, PLR0915
    selected_paths: Sequence[Path | str],
    exclusions: Collection[str] = tuple(DEFAULT_EXCLUSIONS),
    cache: TokenCostCache | None = None,
    token_limit: int = DEFAULT_TOKEN_LIMIT,
    size_cap_bytes: int = DEFAULT_SIZE_CAP_BYTES,
    counter: TokenCounter | None = None,
) -> BatchResult:
    """Partition the selected files into batches of at most `token_limit` tokens.

    Files are skipped silently when their path contains an exclusion substring,
    names an unsaved buffer, no longer exists, or cannot be read. The cached
    cost of a file is used when it was computed from the file's current size and
    mtime; otherwise the cost is recomputed here (the cache is never written).

    Args:
        selected_paths (Sequence[Path | str]): files to pack, in order. Duplicates are packed twice.
        exclusions (Collection[str]): substrings excluding a path
        cache (TokenCostCache | None): cost cache to read from
        token_limit (int): maximum tokens per emitted batch
        size_cap_bytes (int): maximum cumulative size of the processed files
        counter (TokenCounter | None): token counter. Defaults to the cache's counter.

    Raises:
        InputTooLargeError: if the cumulative file size exceeds `size_cap_bytes`.
            Nothing is returned in that case.
        BatchingError: on any other unexpected fault.
        ValueError: if neither `counter` nor `cache` is given.

    Returns:
        BatchResult: the emitted and over-budget batches plus the total token count
    """
    if counter is None:
        if cache is None:
            msg = "pack() needs a token counter or a cache"
            raise ValueError(msg)
        counter = cache.counter

    closed: list[tuple[list[str], list[str], int]] = []
    blocks: list[str] = []
    batch_paths: list[str] = []
    batch_tokens = 0
    total_size = 0
    total_tokens = 0
    languages: dict[str, None] = {}
    processed: list[str] = []

    current: str | None = None
    try:
        for selected in selected_paths:
            current = str(selected)
            if is_excluded(current, exclusions) or is_virtual_buffer(current):
                continue
            path = Path(current)
            try:
                st = path.stat()
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue

            total_size += st.st_size
            if total_size > size_cap_bytes:
                raise InputTooLargeError(total_bytes=total_size, size_cap_bytes=size_cap_bytes, path=path)

            language_name = classify(file_extension(path))
            try:
                block = render_block(current, read_source(path), language_name)
            except UnreadableFileError as e:
                logger.warning("Skipping unreadable file: %s", e)
                continue
            cost = cache.lookup_fresh(path, st.st_size, st.st_mtime_ns) if cache is not None else None
            if cost is None:
                cost = counter(block)

            languages.setdefault(language_name, None)
            processed.append(current)
            total_tokens += cost

            if batch_tokens + cost > token_limit and blocks:
                closed.append((blocks, batch_paths, batch_tokens))
                blocks, batch_paths, batch_tokens = [], [], 0
            blocks.append(block)
            batch_paths.append(current)
            batch_tokens += cost

        if blocks:
            closed.append((blocks, batch_paths, batch_tokens))
        current = None
        emitted, over_budget = _assemble(closed, languages, counter, token_limit)
    except InputTooLargeError:
        logger.warning("Selected files exceed the size cap of %d bytes, nothing emitted", size_cap_bytes)
        raise
    except Exception as e:
        raise BatchingError(path=Path(current) if current else None, reason=str(e)) from e

    if closed:
        logger.info(
            "Packed %d files into %d batches (%d over budget), total tokens %d",
            len(processed),
            len(closed),
            len(over_budget),
            total_tokens,
        )
    return BatchResult(
        batches=tuple(emitted),
        over_budget=tuple(over_budget),
        total_tokens=total_tokens,
        languages=tuple(languages),
        processed=tuple(processed),
        token_limit=token_limit,
    )


def _assemble(
    closed: Sequence[tuple[list[str], list[str], int]],
    languages: Collection[str],
    counter: TokenCounter,
    token_limit: int,
) -> tuple[list[Batch], list[Batch]]:
    """Prefix the preamble, count every full batch and split emitted from over-budget ones."""
    emitted: list[Batch] = []
    over_budget: list[Batch] = []
    if not closed:
        return emitted, over_budget

    preamble = build_preamble(languages)
    for index, (blocks, paths, running) in enumerate(closed):
        text = (preamble if index == 0 else "") + "".join(blocks)
        tokens = counter(text)
        batch = Batch(
            index=index,
            paths=tuple(paths),
            text=text,
            running_tokens=running,
            tokens=tokens,
            over_budget=tokens > token_limit,
        )
        if batch.over_budget:
            logger.warning(
                "Batch %d is over budget (%d > %d tokens) and will not be emitted: %s",
                index + 1,
                tokens,
                token_limit,
                ", ".join(paths),
            )
            over_budget.append(batch)
        else:
            emitted.append(batch)
    return emitted, over_budget
