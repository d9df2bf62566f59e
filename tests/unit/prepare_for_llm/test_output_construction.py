from __future__ import annotations

from pathlib import Path

import pytest

from prepare_for_llm.batching import Batch
from prepare_for_llm.output_construction import build_preamble, join_documents, write_documents


def make_batch(index: int, text: str) -> Batch:
    return Batch(index=index, paths=(f"/p/{index}.py",), text=text, running_tokens=1, tokens=1)


@pytest.mark.unit
def test_build_preamble_lists_languages_in_order() -> None:
    assert build_preamble(["Python", "JavaScript"]) == (
        "The following are the various Python, JavaScript code files for a project. "
        "Each relative file path will be listed, followed by the file contents of that code file in a block:\n\n"
    )


@pytest.mark.unit
def test_write_documents_names_files_after_batch_index(tmp_path: Path) -> None:
    out = tmp_path / "out"

    written = write_documents([make_batch(0, "first"), make_batch(2, "third")], out)

    assert written == [out / "batch_001.md", out / "batch_003.md"]
    assert (out / "batch_001.md").read_text(encoding="utf-8") == "first"
    assert (out / "batch_003.md").read_text(encoding="utf-8") == "third"


@pytest.mark.unit
def test_join_documents() -> None:
    joined = join_documents([make_batch(0, "a"), make_batch(1, "b")])

    assert joined.startswith("a")
    assert joined.endswith("b")
    assert "next batch" in joined
