"""Test fixtures for the ESG RAG core."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from esg_rag.core.config import Settings  # noqa: E402
from esg_rag.db.store import InMemoryDocumentStore  # noqa: E402
from esg_rag.models.entities import Document  # noqa: E402


def _clear_singletons() -> None:
    from esg_rag.api import dependencies as deps
    from esg_rag.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._DB = None
    deps._DOCUMENT_STORE = None
    deps._PROVIDER = None
    deps._VECTOR_INDEX = None
    deps._PROCESSOR = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("ESGRAG_DB_PATH", str(tmp_path / "documents.db"))
    monkeypatch.delenv("ESGRAG_CONFIG", raising=False)
    monkeypatch.delenv("ESGRAG_HOST", raising=False)
    _clear_singletons()
    yield
    _clear_singletons()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "documents.db",
        embedding_model="hashed",
        embedding_dim=4,
        chunk_max_tokens=50,
        chunk_overlap_tokens=10,
        batch_size=4,
        max_concurrency=2,
        max_attempts=3,
        backoff_base=0.0,
        backoff_max=0.0,
    )


@pytest.fixture
def esg_documents() -> list[Document]:
    return [
        Document(
            id="doc-carbon",
            text="Page 1\nOur carbon emissions fell by 12 percent.\n\nCarbon offsets cover the remainder.",
            filename="climate.pdf",
            region="EU",
            organization="Acme",
            document_type="annual_report",
        ),
        Document(
            id="doc-water",
            text="Water withdrawal in arid regions is tracked monthly.",
            filename="water.pdf",
            region="US",
            organization="Acme",
            document_type="sustainability_report",
        ),
        Document(
            id="doc-board",
            text="Board governance and diversity targets are reviewed each year.",
            filename="governance.docx",
            region="EU",
            organization="Globex",
            document_type="policy",
        ),
    ]


@pytest.fixture
def document_store(esg_documents: list[Document]) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(esg_documents)


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
