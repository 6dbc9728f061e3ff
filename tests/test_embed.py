"""Tests for hybridrag.embed — ChromaDBEmbedder, OllamaEmbedder, and OpenAICompatEmbedder."""

from __future__ import annotations

import json
import os
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest

from hybridrag.config import HybridRagConfig
from hybridrag.embed.base import BaseEmbedder
from hybridrag.embed.chromadb_embed import ChromaDBEmbedder
from hybridrag.embed.ollama import OllamaEmbedder
from hybridrag.embed.openai_compat import OpenAICompatEmbedder
from hybridrag.exceptions import EmbeddingError

# --- Helpers ---

_FAKE_VECTOR = [0.1, 0.2, 0.3, 0.4, 0.5]


def _texts(n: int) -> list[str]:
    return [f"chunk {i}" for i in range(n)]


def _ollama_response(embeddings: list[list[float]]) -> bytes:
    """Build a mock Ollama /api/embed response body."""
    return json.dumps({"embeddings": embeddings}).encode("utf-8")


def _openai_response(embeddings: list[list[float]]) -> bytes:
    """Build a mock OpenAI /v1/embeddings response body."""
    data = [{"object": "embedding", "index": i, "embedding": e} for i, e in enumerate(embeddings)]
    return json.dumps({"object": "list", "data": data, "model": "test"}).encode("utf-8")


class _FakeResponse:
    """Minimal mock for urllib.request.urlopen return value."""

    def __init__(self, data: bytes, status: int = 200) -> None:
        self._data = data
        self.status = status

    def read(self) -> bytes:
        return self._data

    def __enter__(self) -> _FakeResponse:
        return self

    def __exit__(self, *args: object) -> None:
        pass


def _local_openai_config() -> HybridRagConfig:
    config = HybridRagConfig()
    config.embedding.provider = "openai"
    config.embedding.api_key_env = ""
    config.embedding.base_url = "http://localhost:8080/v1"
    return config


# --- ChromaDBEmbedder Tests ---


def _mock_ef(texts):
    """Mock ChromaDB DefaultEmbeddingFunction returning 384-dim vectors."""
    return [[0.1] * 384 for _ in texts]


def _chroma_embedder(ef: MagicMock, config: HybridRagConfig | None = None) -> ChromaDBEmbedder:
    config = config or HybridRagConfig()
    config.embedding.model = ""
    with patch("hybridrag.embed.chromadb_embed.DefaultEmbeddingFunction", return_value=ef):
        return ChromaDBEmbedder(config)


class TestChromaDBEmbedderInit:
    def test_is_base_embedder(self):
        embedder = _chroma_embedder(MagicMock(side_effect=_mock_ef))
        assert isinstance(embedder, BaseEmbedder)

    def test_warns_on_unsupported_model(self, caplog):
        config = HybridRagConfig()
        config.embedding.model = "bge-large-en"
        with patch(
            "hybridrag.embed.chromadb_embed.DefaultEmbeddingFunction",
            return_value=MagicMock(side_effect=_mock_ef),
        ):
            ChromaDBEmbedder(config)
        assert "ignoring model='bge-large-en'" in caplog.text

    def test_no_warning_on_fixed_model(self, caplog):
        config = HybridRagConfig()
        config.embedding.model = "all-MiniLM-L6-v2"
        with patch(
            "hybridrag.embed.chromadb_embed.DefaultEmbeddingFunction",
            return_value=MagicMock(side_effect=_mock_ef),
        ):
            ChromaDBEmbedder(config)
        assert "ignoring model" not in caplog.text

    def test_raises_on_init_failure(self):
        with (
            patch(
                "hybridrag.embed.chromadb_embed.DefaultEmbeddingFunction",
                side_effect=RuntimeError("ONNX not available"),
            ),
            pytest.raises(EmbeddingError, match="Failed to initialize"),
        ):
            ChromaDBEmbedder(HybridRagConfig())


class TestChromaDBEmbed:
    def test_embeds_texts(self):
        embedder = _chroma_embedder(MagicMock(side_effect=_mock_ef))
        result = embedder.embed_texts(_texts(5))
        assert len(result) == 5
        assert all(len(v) == 384 for v in result)

    def test_empty_returns_empty(self):
        ef = MagicMock(side_effect=_mock_ef)
        embedder = _chroma_embedder(ef)
        assert embedder.embed_texts([]) == []
        ef.assert_not_called()

    def test_raises_on_embedding_failure(self):
        embedder = _chroma_embedder(MagicMock(side_effect=RuntimeError("ONNX error")))
        with pytest.raises(EmbeddingError, match="ChromaDB embedding failed"):
            embedder.embed_texts(["text"])

    def test_raises_on_count_mismatch(self):
        embedder = _chroma_embedder(MagicMock(return_value=[[0.1] * 384, [0.2] * 384]))
        with pytest.raises(EmbeddingError, match="3 inputs"):
            embedder.embed_texts(_texts(3))

    def test_query_returns_list(self):
        embedder = _chroma_embedder(MagicMock(side_effect=_mock_ef))
        result = embedder.embed_query("rank fusion")
        assert isinstance(result, list)
        assert len(result) == 384

    def test_applies_prefixes(self):
        config = HybridRagConfig()
        config.embedding.query_prefix = "query: "
        config.embedding.passage_prefix = "passage: "
        ef = MagicMock(side_effect=_mock_ef)
        embedder = _chroma_embedder(ef, config)

        embedder.embed_texts(["fusion"])
        embedder.embed_query("rank")

        assert ef.call_args_list[0].args[0] == ["passage: fusion"]
        assert ef.call_args_list[1].args[0] == ["query: rank"]

    def test_dimension(self):
        embedder = _chroma_embedder(MagicMock(side_effect=_mock_ef))
        assert embedder.dimension == 384


# --- OllamaEmbedder Tests ---


class TestOllamaEmbedderInit:
    def test_uses_default_base_url(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        assert embedder._base_url == "http://localhost:11434"

    def test_strips_trailing_slash(self):
        config = HybridRagConfig()
        config.embedding.base_url = "http://gpu-server:11434/"
        embedder = OllamaEmbedder(config)
        assert embedder._base_url == "http://gpu-server:11434"

    def test_rejects_zero_batch_size(self):
        config = HybridRagConfig()
        config.embedding.batch_size = 0
        with pytest.raises(EmbeddingError, match="batch_size"):
            OllamaEmbedder(config)


class TestOllamaEmbedTexts:
    def test_embeds_single_text(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        response = _FakeResponse(_ollama_response([_FAKE_VECTOR]))

        with patch("hybridrag.embed.ollama.urlopen", return_value=response):
            result = embedder.embed_texts(["test content"])

        assert result == [_FAKE_VECTOR]

    def test_respects_batch_size(self):
        config = HybridRagConfig()
        config.embedding.batch_size = 2
        embedder = OllamaEmbedder(config)

        batch_sizes: list[int] = []

        def mock_urlopen(req, **kwargs):
            body = json.loads(req.data)
            n = len(body["input"])
            batch_sizes.append(n)
            return _FakeResponse(_ollama_response([_FAKE_VECTOR] * n))

        with patch("hybridrag.embed.ollama.urlopen", side_effect=mock_urlopen):
            result = embedder.embed_texts(_texts(5))

        assert len(result) == 5
        assert batch_sizes == [2, 2, 1]

    def test_applies_prefixes(self):
        config = HybridRagConfig()
        config.embedding.passage_prefix = "search_document: "
        config.embedding.query_prefix = "search_query: "
        embedder = OllamaEmbedder(config)
        inputs: list[list[str]] = []

        def mock_urlopen(req, **kwargs):
            body = json.loads(req.data)
            inputs.append(body["input"])
            return _FakeResponse(_ollama_response([_FAKE_VECTOR] * len(body["input"])))

        with patch("hybridrag.embed.ollama.urlopen", side_effect=mock_urlopen):
            embedder.embed_texts(["passage"])
            embedder.embed_query("question")

        assert inputs == [["search_document: passage"], ["search_query: question"]]

    def test_raises_on_connection_error(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        with (
            patch(
                "hybridrag.embed.ollama.urlopen",
                side_effect=ConnectionError("Connection refused"),
            ),
            pytest.raises(EmbeddingError, match="Ollama"),
        ):
            embedder.embed_texts(["text"])

    def test_raises_on_url_error(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        with (
            patch("hybridrag.embed.ollama.urlopen", side_effect=URLError("no route")),
            pytest.raises(EmbeddingError, match="not reachable"),
        ):
            embedder.embed_query("text")

    def test_raises_on_http_error(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        err = HTTPError("http://localhost:11434/api/embed", 500, "Server Error", {}, None)
        with (
            patch("hybridrag.embed.ollama.urlopen", side_effect=err),
            pytest.raises(EmbeddingError, match="500"),
        ):
            embedder.embed_texts(["text"])

    def test_raises_on_invalid_json_response(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        response = _FakeResponse(b"<html>Not JSON</html>")
        with (
            patch("hybridrag.embed.ollama.urlopen", return_value=response),
            pytest.raises(EmbeddingError, match="invalid JSON"),
        ):
            embedder.embed_texts(["text"])

    def test_raises_on_count_mismatch(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        response = _FakeResponse(_ollama_response([_FAKE_VECTOR] * 2))
        with (
            patch("hybridrag.embed.ollama.urlopen", return_value=response),
            pytest.raises(EmbeddingError, match="3 inputs"),
        ):
            embedder.embed_texts(_texts(3))


class TestOllamaDimension:
    def test_probes_dimension_if_unknown(self):
        embedder = OllamaEmbedder(HybridRagConfig())
        response = _FakeResponse(_ollama_response([_FAKE_VECTOR]))

        with patch("hybridrag.embed.ollama.urlopen", return_value=response):
            assert embedder.dimension == 5


# --- OpenAICompatEmbedder Tests ---


class TestOpenAICompatInit:
    def test_uses_default_base_url(self):
        config = HybridRagConfig()
        config.embedding.api_key_env = "TEST_KEY"
        with patch.dict(os.environ, {"TEST_KEY": "sk-test"}):
            embedder = OpenAICompatEmbedder(config)
        assert embedder._base_url == "https://api.openai.com/v1"

    def test_warns_when_key_missing(self, caplog, monkeypatch):
        monkeypatch.delenv("MISSING_KEY_FOR_TEST", raising=False)
        config = HybridRagConfig()
        config.embedding.api_key_env = "MISSING_KEY_FOR_TEST"
        OpenAICompatEmbedder(config)
        assert "MISSING_KEY_FOR_TEST" in caplog.text


class TestOpenAICompatEmbedTexts:
    def test_sends_api_key(self):
        config = HybridRagConfig()
        config.embedding.api_key_env = "TEST_KEY"
        config.embedding.model = "text-embedding-3-small"
        with patch.dict(os.environ, {"TEST_KEY": "sk-test"}):
            embedder = OpenAICompatEmbedder(config)

        def mock_urlopen(req, **kwargs):
            assert req.get_header("Authorization") == "Bearer sk-test"
            return _FakeResponse(_openai_response([_FAKE_VECTOR]))

        with patch("hybridrag.embed.openai_compat.urlopen", side_effect=mock_urlopen):
            result = embedder.embed_texts(["text"])

        assert result == [_FAKE_VECTOR]

    def test_works_without_api_key(self):
        """Some OpenAI-compat servers (vLLM, LiteLLM) don't need API keys."""
        embedder = OpenAICompatEmbedder(_local_openai_config())

        def mock_urlopen(req, **kwargs):
            assert req.get_header("Authorization") is None
            return _FakeResponse(_openai_response([_FAKE_VECTOR]))

        with patch("hybridrag.embed.openai_compat.urlopen", side_effect=mock_urlopen):
            assert len(embedder.embed_texts(["text"])) == 1

    def test_orders_by_index(self):
        embedder = OpenAICompatEmbedder(_local_openai_config())
        body = json.dumps(
            {
                "data": [
                    {"index": 1, "embedding": [2.0]},
                    {"index": 0, "embedding": [1.0]},
                ]
            }
        ).encode("utf-8")

        with patch(
            "hybridrag.embed.openai_compat.urlopen", return_value=_FakeResponse(body)
        ):
            assert embedder.embed_texts(["a", "b"]) == [[1.0], [2.0]]

    def test_respects_batch_size(self):
        config = _local_openai_config()
        config.embedding.batch_size = 3
        embedder = OpenAICompatEmbedder(config)
        batch_sizes: list[int] = []

        def mock_urlopen(req, **kwargs):
            n = len(json.loads(req.data)["input"])
            batch_sizes.append(n)
            return _FakeResponse(_openai_response([_FAKE_VECTOR] * n))

        with patch("hybridrag.embed.openai_compat.urlopen", side_effect=mock_urlopen):
            result = embedder.embed_texts(_texts(7))

        assert len(result) == 7
        assert batch_sizes == [3, 3, 1]

    def test_raises_on_http_error(self):
        embedder = OpenAICompatEmbedder(_local_openai_config())
        err = HTTPError("http://localhost:8080/v1/embeddings", 401, "Unauthorized", {}, None)
        with (
            patch("hybridrag.embed.openai_compat.urlopen", side_effect=err),
            pytest.raises(EmbeddingError, match="401"),
        ):
            embedder.embed_texts(["text"])

    def test_raises_on_missing_embedding_field(self):
        embedder = OpenAICompatEmbedder(_local_openai_config())
        body = json.dumps({"data": [{"index": 0}]}).encode("utf-8")
        with (
            patch("hybridrag.embed.openai_compat.urlopen", return_value=_FakeResponse(body)),
            pytest.raises(EmbeddingError, match="missing 'embedding'"),
        ):
            embedder.embed_texts(["text"])

    def test_raises_on_invalid_json_response(self):
        embedder = OpenAICompatEmbedder(_local_openai_config())
        with (
            patch(
                "hybridrag.embed.openai_compat.urlopen",
                return_value=_FakeResponse(b"502 Bad Gateway"),
            ),
            pytest.raises(EmbeddingError, match="invalid JSON"),
        ):
            embedder.embed_texts(["text"])


class TestOpenAICompatEmbedQuery:
    def test_returns_vector(self):
        embedder = OpenAICompatEmbedder(_local_openai_config())
        response = _FakeResponse(_openai_response([_FAKE_VECTOR]))

        with patch("hybridrag.embed.openai_compat.urlopen", return_value=response):
            assert embedder.embed_query("fusion of ranked lists") == _FAKE_VECTOR
        assert embedder.dimension == 5


# --- Registry Integration Tests ---


class TestRegistryIntegration:
    def test_builtin_providers_registered(self):
        from hybridrag.registry import default_registry

        assert default_registry.list_providers("embedding") == ["chromadb", "ollama", "openai"]

    def test_creates_ollama(self):
        from hybridrag.registry import default_registry

        embedder = default_registry.create("embedding", "ollama", HybridRagConfig())
        assert isinstance(embedder, OllamaEmbedder)
