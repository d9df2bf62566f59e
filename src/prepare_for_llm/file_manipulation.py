from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from prepare_for_llm.config import DEFAULT_MAX_DEPTH, FileRecord, classify, file_extension
from prepare_for_llm.exceptions import UnreadableFileError
from prepare_for_llm.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from prepare_for_llm.ignore import IgnoreRuleSet

# Applied to every language alike: `//` inside string literals is stripped too.
COMMENT_PATTERN = re.compile(r"/\*[\s\S]*?\*/|//[^\r\n]*")


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def walk_files(
    root: Path,
    max_depth: int = DEFAULT_MAX_DEPTH,
    rules: IgnoreRuleSet | None = None,
) -> list[Path]:
    """Enumerate every regular file under `root`.

    The walk is depth-first over an explicit stack of pending directories, with
    the entries of each directory visited in lexicographic order, so the result
    is the same from one run to the next. Entries that cannot be listed or
    statted are skipped with a warning. Symlinked directories are not followed
    and directories deeper than `max_depth` are skipped. When `rules` is given,
    ignored directories are pruned without being listed.

    Args:
        root (Path): the directory to walk
        max_depth (int): maximum directory depth below `root`. Defaults to 64.
        rules (IgnoreRuleSet | None): rules used to prune ignored directories

    Returns:
        list[Path]: absolute paths of the files found
    """
    results: list[Path] = []
    pending: list[tuple[Path, int]] = [(root, 0)]
    while pending:
        directory, depth = pending.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Skipping directory %s due to error: %s", directory, e)
            continue

        subdirs: list[Path] = []
        for entry in entries:
            path = Path(entry.path)
            try:
                if entry.is_dir(follow_symlinks=False):
                    if rules is None or not rules.matches(relpath(path, root) + "/"):
                        subdirs.append(path)
                elif entry.is_file():
                    results.append(path)
            except OSError as e:
                logger.warning("Skipping file/directory %s due to error: %s", path, e)

        if depth + 1 > max_depth and subdirs:
            logger.warning("Skipping %d directories below %s: max depth %d reached", len(subdirs), directory, max_depth)
            continue
        # Reversed so the lexicographically first directory is popped first.
        pending.extend((d, depth + 1) for d in reversed(subdirs))
    return results


def strip_comments(text: str) -> str:
    """Remove `/* ... */` blocks and `//` line comments from `text`.

    This is a single regex pass with no knowledge of the language, so a string
    literal such as "http://example.com" loses everything after `http:`.

    Args:
        text (str): the source text

    Returns:
        str: the text with comments removed
    """
    return COMMENT_PATTERN.sub("", text)


def read_source(path: Path) -> str:
    """Read a file as UTF-8 text, each undecodable byte becoming U+FFFD.

    Line endings are kept as they are on disk.

    Args:
        path (Path): the file to read

    Raises:
        UnreadableFileError: if the file vanished or cannot be read

    Returns:
        str: the decoded content
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise UnreadableFileError(path=path, reason=str(e)) from e
    return raw.decode("utf-8", errors="replace")


def render_block(path: Path | str, content: str, language_name: str) -> str:
    """Render one file as a fenced, path-annotated block.

    Args:
        path (Path | str): the path written above the fence, as given
        content (str): the raw file content, comments included
        language_name (str): the label of the fence

    Returns:
        str: the rendered block
    """
    return f"\n---\n\n{path}\n```{language_name}\n{strip_comments(content)}\n```\n"


def render_file(path: Path) -> str:
    """Read `path` and render its block, labelled from its extension.

    Raises:
        UnreadableFileError: if the file cannot be read
    """
    return render_block(path, read_source(path), classify(file_extension(path)))


def make_recs(files: Sequence[Path], root: Path) -> list[FileRecord]:
    """Create a list of FileRecord objects for the given files.

    Files that cannot be statted are skipped with a warning.

    Args:
        files (Sequence[Path]): the files to describe (absolute paths)
        root (Path): the root used for the relative paths

    Returns:
        list[FileRecord]: one record per readable file, in the given order
    """
    recs: list[FileRecord] = []
    for f in files:
        try:
            st = f.stat()
        except OSError as e:
            logger.warning("Skipping %s: %s", f, e)
            continue
        recs.append(FileRecord(path=f, root=root, size=st.st_size, mtime_ns=st.st_mtime_ns))
    return recs
