"""Tests for configuration loading."""

from pathlib import Path

import pytest

from esg_rag.core.config import Settings
from esg_rag.core.errors import ConfigurationError

CONFIG_YAML = """
storage:
  db_path: {db_path}
embeddings:
  model: openai:text-embedding-3-small
  dimension: 1536
  apiKey: sk-test
chunking:
  maxTokens: 500
  overlapTokens: 50
  preserveParagraphs: false
batchSize: 5
skipExisting: false
search:
  topK: 20
  minSimilarity: 0.3
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults_without_config_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ESGRAG_DB_PATH", raising=False)
    settings = Settings.from_yaml()
    assert settings.embedding_model == "hashed"
    assert settings.embedding_dim is None
    assert (settings.chunk_max_tokens, settings.chunk_overlap_tokens) == (1000, 200)
    assert settings.batch_size == 10
    assert settings.skip_existing is True
    assert (settings.search_top_k, settings.search_min_similarity) == (10, 0.5)


def test_yaml_keys_map_to_fields(tmp_path: Path) -> None:
    settings = Settings.from_yaml(_write(tmp_path, CONFIG_YAML.format(db_path=tmp_path / "docs.db")))
    assert settings.embedding_model == "openai:text-embedding-3-small"
    assert settings.embedding_dim == 1536
    assert settings.embedding_api_key == "sk-test"
    assert (settings.chunk_max_tokens, settings.chunk_overlap_tokens) == (500, 50)
    assert settings.chunk_preserve_paragraphs is False
    assert settings.batch_size == 5
    assert settings.skip_existing is False
    assert (settings.search_top_k, settings.search_min_similarity) == (20, 0.3)


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, CONFIG_YAML.format(db_path=tmp_path / "docs.db"))
    monkeypatch.setenv("ESGRAG_CONFIG", str(path))
    monkeypatch.setenv("ESGRAG_BATCH_SIZE", "7")
    monkeypatch.setenv("ESGRAG_DB_PATH", str(tmp_path / "override.db"))
    settings = Settings.from_yaml()
    assert settings.batch_size == 7
    assert settings.db_path == tmp_path / "override.db"
    assert settings.chunk_max_tokens == 500


@pytest.mark.parametrize(
    "content",
    [
        "chunking:\n  maxTokens: 100\n  overlapTokens: 100\n",
        "batchSize: 0\n",
        "search:\n  topK: 51\n",
        "search:\n  minSimilarity: 1.5\n",
        "chunking:\n  tokenUnit: sentence\n",
    ],
)
def test_invalid_values_raise_configuration_error(tmp_path: Path, content: str) -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_yaml(_write(tmp_path, content))


def test_malformed_yaml_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_yaml(_write(tmp_path, "chunking: [unclosed\n"))


def test_non_mapping_yaml_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_yaml(_write(tmp_path, "- just\n- a list\n"))
