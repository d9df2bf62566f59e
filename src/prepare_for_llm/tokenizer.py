from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

import tiktoken

from prepare_for_llm.config import DEFAULT_ENCODING

TokenCounter = Callable[[str], int]


@lru_cache(maxsize=8)
def get_encoding(encoding_name: str = DEFAULT_ENCODING) -> tiktoken.Encoding:
    """Load (once) the tiktoken encoding called `encoding_name`."""
    return tiktoken.get_encoding(encoding_name)


def tiktoken_counter(encoding_name: str = DEFAULT_ENCODING) -> TokenCounter:
    """Build a token counter backed by a tiktoken encoding.

    Special token markers such as ``<|endoftext|>`` found in source files are
    counted as plain text instead of being rejected.

    Args:
        encoding_name (str): tiktoken encoding name. Defaults to "gpt2".

    Returns:
        TokenCounter: a pure function `text -> number of tokens`
    """
    encoding = get_encoding(encoding_name)

    def count(text: str) -> int:
        return len(encoding.encode(text, disallowed_special=()))

    return count
