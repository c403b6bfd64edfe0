"""Tests for document fingerprints."""

from dataclasses import replace

from esg_rag.ingest.chunker import Chunker
from esg_rag.ingest.fingerprints import FingerprintStore, compute_fingerprint
from esg_rag.models.entities import Document

SIGNATURE = Chunker(100, 10).signature


def _document(**overrides) -> Document:
    base = Document(id="doc-1", text="Carbon emissions fell.\n\nWater use rose.", region="EU", organization="Acme")
    return replace(base, **overrides)


def test_new_document_is_processed() -> None:
    decision = FingerprintStore(SIGNATURE).should_process(_document(), skip_existing=True)
    assert not decision.skip
    assert decision.reason == "new"


def test_unchanged_processed_document_is_skipped() -> None:
    store = FingerprintStore(SIGNATURE)
    document = _document(processed=True)
    store.record(document.id, store.fingerprint(document))

    decision = store.should_process(document, skip_existing=True)
    assert decision.skip
    assert decision.reason == "unchanged"
    assert decision.fingerprint == store.get(document.id)


def test_changed_text_is_reprocessed() -> None:
    store = FingerprintStore(SIGNATURE)
    document = _document(processed=True)
    store.record(document.id, store.fingerprint(document))

    decision = store.should_process(replace(document, text="Carbon emissions rose."), skip_existing=True)
    assert not decision.skip
    assert decision.reason == "changed"


def test_skip_existing_disabled_forces_processing() -> None:
    store = FingerprintStore(SIGNATURE)
    document = _document(processed=True)
    store.record(document.id, store.fingerprint(document))
    assert store.should_process(document, skip_existing=False).reason == "forced"


def test_unprocessed_flag_forces_processing() -> None:
    store = FingerprintStore(SIGNATURE)
    document = _document(processed=False)
    store.record(document.id, store.fingerprint(document))
    assert not store.should_process(document, skip_existing=True).skip


def test_whitespace_changes_keep_fingerprint() -> None:
    original = _document()
    reflowed = replace(original, text="  Carbon emissions   fell.\r\n\r\nWater use rose.\n")
    assert compute_fingerprint(original, SIGNATURE) == compute_fingerprint(reflowed, SIGNATURE)


def test_metadata_and_chunking_feed_fingerprint() -> None:
    document = _document()
    baseline = compute_fingerprint(document, SIGNATURE)
    assert compute_fingerprint(replace(document, region="US"), SIGNATURE) != baseline
    assert compute_fingerprint(document, Chunker(100, 20).signature) != baseline
    assert compute_fingerprint(replace(document, processed=True), SIGNATURE) == baseline


def test_forget_and_clear() -> None:
    store = FingerprintStore(SIGNATURE)
    store.record("a", "1")
    store.record("b", "2")
    store.forget("a")
    assert store.get("a") is None
    assert len(store) == 1
    store.clear()
    assert len(store) == 0
