"""Tests for indexing notices."""

from __future__ import annotations

import logging

from kgrag.core.events import EventType, IndexEvent, log_event


class TestIndexEvent:
    def test_indexed(self):
        e = IndexEvent.indexed("Knowledge/a.md", "a.md", 3)
        assert e.type == EventType.INDEXED
        assert e.data == {"path": "Knowledge/a.md", "file_name": "a.md", "chunks": 3}
        assert e.message == "Indexed: a.md (3 chunks)"
        assert not e.is_error

    def test_removed(self):
        assert IndexEvent.removed("K/a.md", "a.md").message == "Removed from index: a.md"

    def test_skipped(self):
        e = IndexEvent.skipped("K/a.md", "a.md", "empty")
        assert e.message == "Skipped a.md: empty"

    def test_failures_are_errors(self):
        extraction = IndexEvent.extraction_failed("K/a.pdf", "a.pdf", "bad xref")
        embedding = IndexEvent.embedding_failed("K/a.md", "a.md", "timeout")
        assert extraction.is_error and embedding.is_error
        assert extraction.message == "Failed to extract text from a.pdf"
        assert embedding.message == "Embedding failed for a.md"

    def test_status(self):
        e = IndexEvent.status("Indexed 2 new files")
        assert e.type == EventType.STATUS
        assert e.message == "Indexed 2 new files"


class TestLogEvent:
    def test_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="kgrag.core.events"):
            log_event(IndexEvent.indexed("K/a.md", "a.md", 1))
        assert caplog.records[-1].levelno == logging.INFO
        assert "Indexed: a.md" in caplog.text

    def test_error(self, caplog):
        with caplog.at_level(logging.INFO, logger="kgrag.core.events"):
            log_event(IndexEvent.embedding_failed("K/a.md", "a.md", "timeout"))
        assert caplog.records[-1].levelno == logging.ERROR
        assert "timeout" in caplog.text
