from __future__ import annotations

from typing import TYPE_CHECKING

from prepare_for_llm.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from prepare_for_llm.batching import Batch

DOCUMENT_NAME_TEMPLATE = "batch_{index:03d}.md"
DOCUMENT_SEPARATOR = "\n\n<!-- next batch -->\n\n"


def build_preamble(languages: Iterable[str]) -> str:
    """Build the introduction placed at the top of the first batch.

    Args:
        languages (Iterable[str]): distinct language names, in first-seen order

    Returns:
        str: the preamble, ending with a blank line
    """
    languages_list = ", ".join(languages)
    return (
        f"The following are the various {languages_list} code files for a project. "
        "Each relative file path will be listed, followed by the file contents of that code file in a block:\n\n"
    )


def write_documents(batches: Sequence[Batch], output_dir: Path) -> list[Path]:
    """Write each batch to its own UTF-8 Markdown document.

    Documents are named after the batch index (`batch_001.md`, ...), so a batch
    left out of `batches` leaves a gap in the numbering.

    Args:
        batches (Sequence[Batch]): the batches to write, in order
        output_dir (Path): the directory receiving the documents, created if missing

    Returns:
        list[Path]: the written documents, in order
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for batch in batches:
        out_path = output_dir / DOCUMENT_NAME_TEMPLATE.format(index=batch.index + 1)
        out_path.write_text(batch.text, encoding="utf-8")
        logger.info("Wrote %s tokens=%d files=%d", out_path, batch.tokens, len(batch.paths))
        written.append(out_path)
    return written


def join_documents(batches: Sequence[Batch]) -> str:
    """Join the batches into one text, for printing to a terminal."""
    return DOCUMENT_SEPARATOR.join(b.text for b in batches)
