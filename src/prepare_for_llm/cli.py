"""
prepare_for_llm: split project files into token-bounded prompts for an LLM.

Overview
--------
Every selected file is rendered as a fenced code block headed by its path,
with `/* */` and `//` comments stripped. Blocks are packed in selection order
into batches of at most `--token-limit` tokens; the first batch starts with a
short preamble naming the languages present. Each batch within budget becomes
one Markdown document. A batch that is still over the limit (a single file
larger than the limit) is reported and not written.

The run aborts without writing anything when the selected files weigh more
than `--size-cap` bytes in total.

Usage
-----
    - Every non-ignored file of the current project, printed to stdout:
        prepare-for-llm --all

    - Python and TypeScript files, one document per batch:
        prepare-for-llm --repo ~/code/app --extensions py,ts --output-dir prompts/

    - Explicit files, in this order, with a smaller budget:
        prepare-for-llm src/app.py src/models.py --token-limit 4000
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from prepare_for_llm import __version__
from prepare_for_llm.config import MAX_TOKEN_LIMIT, MIN_TOKEN_LIMIT, PROJECT_CONFIG_FILE
from prepare_for_llm.exceptions import BatchingError, InputTooLargeError
from prepare_for_llm.logging import setup_logging
from prepare_for_llm.output_construction import join_documents, write_documents
from prepare_for_llm.selection import select_all, select_by_extensions
from prepare_for_llm.session import Session
from prepare_for_llm.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from prepare_for_llm.batching import BatchResult
    from prepare_for_llm.tokenizer import TokenCounter

logger = setup_logging()

EXIT_OK = 0
EXIT_NOTHING_SELECTED = 1
EXIT_INPUT_TOO_LARGE = 2
EXIT_BATCHING_FAILED = 3


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="prepare-for-llm",
        description="Split project files into token-bounded prompts for an LLM.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("files", nargs="*", type=Path, help="Files to pack, in order.")
    p.add_argument("--repo", type=Path, default=None, help="Project root (default: cwd).")
    p.add_argument("--config", type=Path, default=None, help=f"Project config file (default: <repo>/{PROJECT_CONFIG_FILE}).")

    scope = p.add_mutually_exclusive_group()
    scope.add_argument("--all", action="store_true", default=None, help="Pack every candidate file.")
    scope.add_argument("--extensions", type=str, default=None, help="Comma list of extensions, e.g. py,ts.")

    p.add_argument(
        "--token-limit",
        type=int,
        default=None,
        help=f"Maximum tokens per batch ({MIN_TOKEN_LIMIT}-{MAX_TOKEN_LIMIT}).",
    )
    p.add_argument(
        "--exclude",
        dest="exclusions",
        action="append",
        default=None,
        help="Path substring never packed (repeatable, replaces the defaults).",
    )
    p.add_argument("--size-cap", dest="size_cap_bytes", type=int, default=None, help="Maximum total bytes.")
    p.add_argument("--ignore-file", type=str, default=None, help="Ignore file at the root (default: .gitignore).")
    p.add_argument("--encoding", type=str, default=None, help="tiktoken encoding (default: gpt2).")
    p.add_argument("--output-dir", type=Path, default=None, help="Write batch_NNN.md files here instead of stdout.")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    parser = build_parser()
    args = parser.parse_args(argv)
    values = vars(args)
    config_file = values.pop("config")
    repo = values["repo"] or Path.cwd()
    if config_file is None:
        config_file = repo / PROJECT_CONFIG_FILE
    if not values["files"]:
        values.pop("files")
    else:
        values["files"] = [f.absolute() for f in values["files"]]
    try:
        return Settings.from_sources(config_file=config_file, **values)
    except ValidationError as e:
        parser.error(str(e))


def select_files(session: Session, settings: Settings) -> list[Path]:
    """Resolve the selection flags into an ordered list of files."""
    if settings.files:
        return list(settings.files)
    if settings.extensions:
        return select_by_extensions(session.all_files(), settings.extensions)
    if settings.all:
        return select_all(session.candidates())
    return []


def report(result: BatchResult, settings: Settings) -> None:
    """Write or print the emitted batches and summarize the run."""
    summary = sys.stderr
    if settings.output_dir is not None:
        for path in write_documents(result.batches, settings.output_dir):
            print(f"Wrote {path}", file=summary)
    elif result.batches:
        print(join_documents(result.batches))

    for batch in result.over_budget:
        print(
            f"Batch {batch.index + 1} not emitted: {batch.tokens} tokens > {settings.token_limit} "
            f"({', '.join(batch.paths)})",
            file=summary,
        )
    print(
        f"batches={len(result.batches)} over_budget={len(result.over_budget)} "
        f"files={len(result.processed)} total_tokens={result.total_tokens}",
        file=summary,
    )


async def run(settings: Settings, counter: TokenCounter | None = None) -> int:
    """Build the session, pack the selection and report it.

    Args:
        settings (Settings): the run settings
        counter (TokenCounter | None): token counter. Defaults to tiktoken with `settings.encoding`.

    Returns:
        int: the process exit code
    """
    async with Session(settings, counter=counter) as session:
        selected = select_files(session, settings)
        if not selected:
            print("No files selected: pass files, --extensions or --all.", file=sys.stderr)
            return EXIT_NOTHING_SELECTED
        try:
            result = session.pack(selected)
        except InputTooLargeError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_INPUT_TOO_LARGE
        except BatchingError as e:
            logger.exception("Batching failed")
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_BATCHING_FAILED
    report(result, settings)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file:
        setup_logging(settings.log_file)
    return asyncio.run(run(settings))


if __name__ == "__main__":
    raise SystemExit(main())
