from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from prepare_for_llm.batching import BatchResult, pack
from prepare_for_llm.cache import TokenCostCache
from prepare_for_llm.exceptions import BatchingError, InputTooLargeError
from prepare_for_llm.file_manipulation import render_file
from prepare_for_llm.ignore import IgnoreRuleSet
from prepare_for_llm.output_construction import build_preamble


def write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.unit
def test_two_files_over_limit_go_to_separate_batches(tmp_path: Path, at_counter) -> None:
    a = write(tmp_path / "a.js", "@" * 30)
    b = write(tmp_path / "b.py", "@" * 40)

    result = pack([a, b], exclusions=[], token_limit=50, counter=at_counter)

    assert len(result.batches) == 2
    first, second = result.batches
    assert first.text == build_preamble(["JavaScript", "Python"]) + render_file(a)
    assert second.text == render_file(b)
    assert first.paths == (str(a),)
    assert second.paths == (str(b),)
    assert result.total_tokens == 70
    assert result.over_budget == ()
    assert result.languages == ("JavaScript", "Python")


@pytest.mark.unit
def test_single_file_over_limit_is_isolated_and_not_emitted(tmp_path: Path, at_counter) -> None:
    big = write(tmp_path / "big.ts", "@" * 9000)

    result = pack([big], exclusions=[], token_limit=7500, counter=at_counter)

    assert result.batches == ()
    assert len(result.over_budget) == 1
    assert result.over_budget[0].paths == (str(big),)
    assert result.over_budget[0].tokens == 9000
    assert result.over_budget[0].over_budget is True
    assert result.total_tokens == 9000


@pytest.mark.unit
def test_oversized_file_between_small_ones_gets_its_own_batch(tmp_path: Path, at_counter) -> None:
    small1 = write(tmp_path / "s1.js", "@" * 10)
    big = write(tmp_path / "big.js", "@" * 100)
    small2 = write(tmp_path / "s2.js", "@" * 10)

    result = pack([small1, big, small2], exclusions=[], token_limit=50, counter=at_counter)

    assert [b.paths for b in result.all_batches] == [(str(small1),), (str(big),), (str(small2),)]
    assert [b.index for b in result.batches] == [0, 2]
    assert [b.index for b in result.over_budget] == [1]


@pytest.mark.unit
def test_excluded_paths_contribute_nothing(tmp_path: Path, at_counter) -> None:
    dep = write(tmp_path / "node_modules" / "dep.js", "@" * 5)
    app = write(tmp_path / "app.js", "@" * 3)

    result = pack([dep, app], exclusions=["node_modules"], token_limit=50, counter=at_counter)

    assert result.processed == (str(app),)
    assert result.total_tokens == 3
    assert "node_modules" not in "".join(b.text for b in result.batches)


@pytest.mark.unit
def test_size_cap_aborts_everything(tmp_path: Path, at_counter) -> None:
    one_mib = 1024 * 1024
    a = write(tmp_path / "a.js", "x" * one_mib)
    b = write(tmp_path / "b.js", "x" * one_mib)

    with pytest.raises(InputTooLargeError) as exc_info:
        pack([a, b], exclusions=[], token_limit=50_000, size_cap_bytes=one_mib, counter=at_counter)

    assert exc_info.value.total_bytes == 2 * one_mib
    assert exc_info.value.size_cap_bytes == one_mib
    assert exc_info.value.path == b
    assert "too large" in str(exc_info.value)


@pytest.mark.unit
def test_size_cap_counts_only_processed_files(tmp_path: Path, at_counter) -> None:
    excluded = write(tmp_path / ".git" / "pack.js", "x" * 200)
    kept = write(tmp_path / "kept.js", "x" * 50)

    result = pack([excluded, kept], exclusions=[".git"], token_limit=50, size_cap_bytes=100, counter=at_counter)

    assert result.processed == (str(kept),)


@pytest.mark.unit
@pytest.mark.parametrize("selected", [[], ["Untitled-1"], ["/definitely/not/here.py"]])
def test_nothing_to_pack_gives_empty_result(selected: list[str], at_counter) -> None:
    result = pack(selected, exclusions=[], token_limit=50, counter=at_counter)

    assert result == BatchResult(token_limit=50)
    assert result.all_batches == []


@pytest.mark.unit
def test_directories_are_skipped(tmp_path: Path, at_counter) -> None:
    (tmp_path / "dir.js").mkdir()

    assert pack([tmp_path / "dir.js"], exclusions=[], counter=at_counter).processed == ()


@pytest.mark.unit
def test_zero_byte_file_is_packed(tmp_path: Path) -> None:
    empty = write(tmp_path / "empty.py", "")

    result = pack([empty], exclusions=[], token_limit=5000, counter=len)

    assert result.processed == (str(empty),)
    assert result.total_tokens == len(render_file(empty)) > 0


@pytest.mark.unit
def test_duplicates_are_packed_twice(tmp_path: Path, at_counter) -> None:
    a = write(tmp_path / "a.js", "@" * 4)

    result = pack([a, a], exclusions=[], token_limit=50, counter=at_counter)

    assert result.processed == (str(a), str(a))
    assert result.total_tokens == 8
    assert result.batches[0].text.count(str(a)) == 2


@pytest.mark.unit
def test_order_is_preserved_and_greedy(tmp_path: Path, at_counter) -> None:
    files = [write(tmp_path / f"f{i}.js", "@" * n) for i, n in enumerate([20, 20, 20, 5, 40, 10])]

    result = pack(files, exclusions=[], token_limit=45, counter=at_counter)

    assert [b.paths for b in result.batches] == [
        (str(files[0]), str(files[1])),
        (str(files[2]), str(files[3])),
        (str(files[4]),),
        (str(files[5]),),
    ]
    assert [b.running_tokens for b in result.batches] == [40, 25, 40, 10]
    flat = [p for b in result.batches for p in b.paths]
    assert flat == [str(f) for f in files]


@pytest.mark.unit
def test_every_emitted_batch_respects_the_limit(tmp_path: Path) -> None:
    files = [write(tmp_path / f"m{i}.py", "x = 1\n" * (i * 7 + 1)) for i in range(12)]

    result = pack(files, exclusions=[], token_limit=400, counter=len)

    assert result.batches
    for batch in result.batches:
        assert len(batch.text) == batch.tokens <= 400
    for batch in result.over_budget:
        assert batch.tokens > 400


@pytest.mark.unit
def test_preamble_overhead_can_push_first_batch_over_budget(tmp_path: Path) -> None:
    a = write(tmp_path / "a.js", "let a;")
    block_cost = len(render_file(a))

    result = pack([a], exclusions=[], token_limit=block_cost, counter=len)

    assert result.batches == ()
    assert result.over_budget[0].running_tokens == block_cost
    assert result.over_budget[0].tokens == block_cost + len(build_preamble(["JavaScript"]))


@pytest.mark.unit
def test_pack_is_idempotent(tmp_path: Path, at_counter) -> None:
    files = [write(tmp_path / f"{n}.go", "@" * 15) for n in "abcde"]

    first = pack(files, exclusions=[], token_limit=40, counter=at_counter)
    second = pack(files, exclusions=[], token_limit=40, counter=at_counter)

    assert first == second
    assert [b.text for b in first.batches] == [b.text for b in second.batches]


@pytest.mark.unit
def test_fresh_cache_entry_is_used(tmp_path: Path, at_counter) -> None:
    a = write(tmp_path / "a.js", "@" * 10)
    cache = TokenCostCache(at_counter)
    asyncio.run(cache.build(tmp_path, IgnoreRuleSet()))
    calls: list[str] = []

    def counting(text: str) -> int:
        calls.append(text)
        return at_counter(text)

    result = pack([a], exclusions=[], cache=cache, token_limit=50, counter=counting)

    assert result.total_tokens == 10
    # only the whole-batch count, the per-file cost came from the cache
    assert len(calls) == 1


@pytest.mark.unit
def test_stale_cache_entry_is_recomputed_without_writing_the_cache(tmp_path: Path, at_counter) -> None:
    a = write(tmp_path / "a.js", "@" * 10)
    cache = TokenCostCache(at_counter)
    asyncio.run(cache.build(tmp_path, IgnoreRuleSet()))
    a.write_text("@" * 33, encoding="utf-8")

    result = pack([a], cache=cache, exclusions=[], token_limit=50)

    assert result.total_tokens == 33
    assert cache.tokens_for(a) == 10


@pytest.mark.unit
def test_unexpected_fault_is_translated(tmp_path: Path) -> None:
    a = write(tmp_path / "a.js", "x")

    def broken(_text: str) -> int:
        msg = "tokenizer exploded"
        raise RuntimeError(msg)

    with pytest.raises(BatchingError) as exc_info:
        pack([a], exclusions=[], counter=broken)

    assert exc_info.value.path == a
    assert "tokenizer exploded" in str(exc_info.value)


@pytest.mark.unit
def test_pack_needs_a_counter() -> None:
    with pytest.raises(ValueError, match="counter"):
        pack([])
