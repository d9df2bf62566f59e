from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pathspec

from prepare_for_llm.config import DEFAULT_IGNORE_FILE
from prepare_for_llm.exceptions import IgnoreFileError
from prepare_for_llm.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class IgnoreRuleSet:
    """Compiled gitignore-style rules, immutable once loaded.

    Patterns keep their file order, so a later `!pattern` re-includes what an
    earlier one excluded.
    """

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._patterns: tuple[str, ...] = tuple(p.rstrip("\r\n") for p in patterns)
        self._spec = pathspec.GitIgnoreSpec.from_lines(self._patterns)

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    def matches(self, rel_path: str | Path) -> bool:
        """Check if a path relative to the root is excluded by the rules.

        Args:
            rel_path (str | Path): path relative to the project root

        Returns:
            bool: True if the path is ignored, False otherwise
        """
        rel = Path(rel_path).as_posix() if isinstance(rel_path, Path) else rel_path.replace("\\", "/")
        if not rel or rel == ".":
            return False
        return self._spec.match_file(rel)

    def with_patterns(self, extra: Sequence[str]) -> IgnoreRuleSet:
        """Return a new rule set with `extra` appended after the loaded patterns."""
        return IgnoreRuleSet([*self._patterns, *extra])

    def __len__(self) -> int:
        return sum(1 for p in self._spec.patterns if p.include is not None)

    def __repr__(self) -> str:
        return f"IgnoreRuleSet(patterns={len(self._patterns)})"


def read_ignore_file(path: Path) -> list[str]:
    """Read and validate the patterns of an ignore file.

    Args:
        path (Path): the ignore file to read

    Raises:
        IgnoreFileError: if the file cannot be read, decoded or parsed

    Returns:
        list[str]: the raw pattern lines
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
        pathspec.GitIgnoreSpec.from_lines(lines)
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise IgnoreFileError(path=path, reason=str(e)) from e
    return lines


def load_ignore_rules(
    root: Path,
    filename: str = DEFAULT_IGNORE_FILE,
    extra_patterns: Sequence[str] | None = None,
) -> IgnoreRuleSet:
    """Load the ignore rules found at the root of the project.

    A missing ignore file gives an empty rule set. A file that exists but cannot
    be loaded is logged and also degrades to an empty rule set.

    Args:
        root (Path): the project root
        filename (str): name of the ignore file under `root`. Defaults to ".gitignore".
        extra_patterns (Sequence[str] | None): patterns appended after the file's own

    Returns:
        IgnoreRuleSet: the compiled rules
    """
    ignore_file = root / filename
    lines: list[str] = []
    if ignore_file.is_file():
        try:
            lines = read_ignore_file(ignore_file)
        except IgnoreFileError as e:
            logger.warning("Could not load ignore file, using no rules: %s", e)
    if extra_patterns:
        lines.extend(extra_patterns)
    return IgnoreRuleSet(lines)
