from __future__ import annotations

from pathlib import Path

import pytest


def count_at(text: str) -> int:
    """Deterministic stand-in for a tokenizer: one token per `@`."""
    return text.count("@")


@pytest.fixture
def at_counter():
    return count_at


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small project tree.

    src/app.js       10 tokens
    src/util.py      20 tokens
    src/nested/x.ts   5 tokens
    README           no extension
    logs/debug.log   ignored by .gitignore
    node_modules/dep.js
    """
    root = tmp_path.resolve() / "proj"
    (root / "src" / "nested").mkdir(parents=True)
    (root / "logs").mkdir()
    (root / "node_modules").mkdir()
    (root / "src" / "app.js").write_text("const a = '" + "@" * 10 + "';\n", encoding="utf-8")
    (root / "src" / "util.py").write_text("x = '" + "@" * 20 + "'\n", encoding="utf-8")
    (root / "src" / "nested" / "x.ts").write_text("let y = '" + "@" * 5 + "';\n", encoding="utf-8")
    (root / "README").write_text("@@@ no extension\n", encoding="utf-8")
    (root / "logs" / "debug.log").write_text("@" * 50, encoding="utf-8")
    (root / "node_modules" / "dep.js").write_text("@" * 7, encoding="utf-8")
    (root / ".gitignore").write_text("logs/\n*.log\n", encoding="utf-8")
    return root
