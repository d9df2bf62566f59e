from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from prepare_for_llm.config import is_classifiable
from prepare_for_llm.file_manipulation import relpath

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from prepare_for_llm.cache import TokenCostCache
    from prepare_for_llm.ignore import IgnoreRuleSet


def candidate_files(cache: TokenCostCache, root: Path, rules: IgnoreRuleSet) -> list[Path]:
    """List the files offered for selection.

    A candidate is a cached, non-ignored file with an extension and a positive
    token cost.

    Args:
        cache (TokenCostCache): the session cache
        root (Path): the project root
        rules (IgnoreRuleSet): the ignore rules

    Returns:
        list[Path]: the candidates, sorted by path
    """
    out: list[Path] = []
    for key in cache.paths():
        path = Path(key)
        if rules.matches(relpath(path, root)) or not is_classifiable(path):
            continue
        if (cache.tokens_for(key) or 0) > 0:
            out.append(path)
    return out


def available_extensions(candidates: Iterable[Path]) -> list[str]:
    """Distinct extensions (with their dot) of the candidates, in first-seen order."""
    return list(dict.fromkeys(p.suffix for p in candidates))


def normalize_extensions(extensions: Iterable[str]) -> set[str]:
    """Normalize extensions to their dotted form (`py` and `.py` both give `.py`)."""
    out: set[str] = set()
    for ext in extensions:
        e = ext.strip()
        if not e:
            continue
        out.add(e if e.startswith(".") else f".{e}")
    return out


def select_by_extensions(files: Sequence[Path], extensions: Iterable[str]) -> list[Path]:
    """Keep the files whose extension is one of `extensions`, in the given order.

    Files are matched on their extension only, the ignore rules are not consulted.
    """
    wanted = normalize_extensions(extensions)
    return [f for f in files if f.suffix in wanted]


def select_all(candidates: Sequence[Path]) -> list[Path]:
    return list(candidates)


def select_individual(candidates: Sequence[Path], picks: Iterable[Path | str]) -> list[Path]:
    """Keep the picked files that are candidates, in pick order.

    Args:
        candidates (Sequence[Path]): the files offered for selection
        picks (Iterable[Path | str]): the files picked, absolute paths

    Returns:
        list[Path]: the picked candidates, duplicates kept
    """
    known = {str(c) for c in candidates}
    return [Path(p) for p in picks if str(p) in known]


def remaining_tokens(cache: TokenCostCache, selected: Iterable[Path | str], token_limit: int) -> int:
    """Tokens left under `token_limit` once the cached cost of `selected` is spent.

    Files missing from the cache count for nothing. The result is negative when
    the selection is over the limit.
    """
    used = sum(cache.tokens_for(p) or 0 for p in selected)
    return token_limit - used
