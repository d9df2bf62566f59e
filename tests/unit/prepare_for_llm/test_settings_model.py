from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from prepare_for_llm.settings import Settings, env_values, load_config_file


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.repo.resolve() == Path.cwd().resolve()
    assert settings.token_limit == 7500
    assert settings.exclusions == ["node_modules", ".git"]
    assert settings.size_cap_bytes == 1024 * 1024
    assert settings.ignore_file == ".gitignore"
    assert settings.encoding == "gpt2"
    assert settings.output_dir is None


@pytest.mark.unit
@pytest.mark.parametrize("limit", [1999, 50_001])
def test_token_limit_range_is_enforced(limit: int) -> None:
    with pytest.raises(ValidationError):
        Settings(token_limit=limit)


@pytest.mark.unit
def test_comma_lists_are_split() -> None:
    settings = Settings(exclusions="dist, .venv,", extensions="py,ts")

    assert settings.exclusions == ["dist", ".venv"]
    assert settings.extensions == ["py", "ts"]


@pytest.mark.unit
def test_config_file_keys_are_mapped(tmp_path: Path) -> None:
    config = tmp_path / ".prepare-for-llm.yml"
    config.write_text("tokenLimit: 12000\nexclusions: [vendor]\nunknownKey: 1\n", encoding="utf-8")

    assert load_config_file(config) == {"token_limit": 12000, "exclusions": ["vendor"]}


@pytest.mark.unit
def test_env_values_reads_prefixed_variables() -> None:
    env = {"PREPARE_FOR_LLM_TOKEN_LIMIT": "9000", "PREPARE_FOR_LLM_NOPE": "x", "HOME": "/root"}

    assert env_values(env) == {"token_limit": "9000"}


@pytest.mark.unit
def test_from_sources_priority(tmp_path: Path) -> None:
    config = tmp_path / "cfg.yml"
    config.write_text("tokenLimit: 12000\nsizeCapBytes: 2048\nexclusions: [vendor]\n", encoding="utf-8")
    env = {"PREPARE_FOR_LLM_TOKEN_LIMIT": "9000", "PREPARE_FOR_LLM_SIZE_CAP_BYTES": "4096"}

    settings = Settings.from_sources(config_file=config, env=env, size_cap_bytes=8192, repo=None)

    assert settings.token_limit == 9000
    assert settings.size_cap_bytes == 8192
    assert settings.exclusions == ["vendor"]
    assert settings.repo.resolve() == Path.cwd().resolve()


@pytest.mark.unit
def test_from_sources_without_config_file(tmp_path: Path) -> None:
    settings = Settings.from_sources(config_file=tmp_path / "missing.yml", env={})

    assert settings.token_limit == 7500
