"""Unit tests for the retry/fallback policy wrapper."""

from unittest.mock import Mock

import pytest

from pmiprep.core.errors import ConflictError, NotFoundError, TransientRemoteError, ValidationError
from pmiprep.store.memory import InMemoryDocumentStore
from pmiprep.store.policy import ResilientStore, strict_reads


class LostFirstResponse(InMemoryDocumentStore):
    """Store whose first create commits but reports a transient failure."""

    def __init__(self):
        super().__init__()
        self.create_calls = 0

    def create_document(self, collection, fields, document_id=None, permissions=None):
        self.create_calls += 1
        document = super().create_document(collection, fields, document_id, permissions)
        if self.create_calls == 1:
            raise TransientRemoteError("response lost", operation="create_document")
        return document


def _flaky(result, failures=1):
    """Mock that raises TransientRemoteError ``failures`` times, then returns ``result``."""
    effects = [TransientRemoteError("boom", operation="test")] * failures + [result]
    return Mock(side_effect=effects)


class TestReads:
    """Tests for read retry and fallback."""

    def test_read_retried_then_succeeds(self):
        primary = Mock()
        primary.get_document = _flaky({"$id": "d1"})
        store = ResilientStore(primary, retries=1)

        assert store.get_document("profiles", "d1") == {"$id": "d1"}
        assert primary.get_document.call_count == 2

    def test_read_falls_back_after_retries(self):
        primary = Mock()
        primary.list_documents.side_effect = TransientRemoteError("down", operation="list")
        fallback = Mock()
        fallback.list_documents.return_value = [{"$id": "local"}]
        store = ResilientStore(primary, fallback=fallback, retries=2)

        assert store.list_documents("questions") == [{"$id": "local"}]
        assert primary.list_documents.call_count == 3
        fallback.list_documents.assert_called_once()

    def test_read_without_fallback_raises(self):
        primary = Mock()
        primary.get_document.side_effect = TransientRemoteError("down", operation="get")
        with pytest.raises(TransientRemoteError):
            ResilientStore(primary, retries=0).get_document("profiles", "d1")

    def test_not_found_is_not_retried_or_fallen_back(self):
        primary = Mock()
        primary.get_document.side_effect = NotFoundError("missing")
        fallback = Mock()
        store = ResilientStore(primary, fallback=fallback, retries=3)

        with pytest.raises(NotFoundError):
            store.get_document("profiles", "d1")
        assert primary.get_document.call_count == 1
        fallback.get_document.assert_not_called()

    def test_unknown_exception_treated_as_transient(self):
        primary = Mock()
        primary.get_document.side_effect = ConnectionResetError("reset")
        fallback = Mock()
        fallback.get_document.return_value = {"$id": "d1"}

        store = ResilientStore(primary, fallback=fallback, retries=0)
        assert store.get_document("profiles", "d1") == {"$id": "d1"}


class TestWrites:
    """Tests for write retry rules."""

    def test_create_without_id_is_not_retried(self):
        primary = Mock()
        primary.create_document.side_effect = TransientRemoteError("down", operation="create")
        fallback = Mock()
        store = ResilientStore(primary, fallback=fallback, retries=3)

        with pytest.raises(TransientRemoteError):
            store.create_document("quiz-attempts", {"score": 1})
        assert primary.create_document.call_count == 1
        fallback.create_document.assert_not_called()

    def test_create_with_id_is_retried(self):
        primary = Mock()
        primary.create_document = _flaky({"$id": "quiz-1"})
        store = ResilientStore(primary, retries=1)

        assert store.create_document("quiz-attempts", {"score": 1}, document_id="quiz-1") == {"$id": "quiz-1"}
        assert primary.create_document.call_count == 2

    def test_update_retried(self):
        primary = Mock()
        primary.update_document = _flaky({"$id": "e1"}, failures=2)
        store = ResilientStore(primary, retries=2)

        store.update_document("enrollments", "e1", {"status": "active"})
        assert primary.update_document.call_count == 3

    def test_write_never_goes_to_fallback(self):
        primary = Mock()
        primary.update_document.side_effect = TransientRemoteError("down", operation="update")
        fallback = Mock()

        with pytest.raises(TransientRemoteError):
            ResilientStore(primary, fallback=fallback, retries=1).update_document("enrollments", "e1", {})
        fallback.update_document.assert_not_called()

    def test_validation_error_propagates(self):
        primary = Mock()
        primary.delete_document.side_effect = ValidationError("bad")
        with pytest.raises(ValidationError):
            ResilientStore(primary, retries=2).delete_document("resources", "r1")
        assert primary.delete_document.call_count == 1

    def test_upload_not_retried(self):
        primary = Mock()
        primary.upload_file.side_effect = TransientRemoteError("down", operation="upload")
        with pytest.raises(TransientRemoteError):
            ResilientStore(primary, retries=3).upload_file(b"x", "x.pdf")
        assert primary.upload_file.call_count == 1

    def test_conflict_on_retry_returns_stored_document(self):
        """The first try committed but its response was lost; the retry finds it."""
        primary = LostFirstResponse()
        store = ResilientStore(primary, retries=2)

        document = store.create_document("quiz-attempts", {"score": 80}, document_id="quiz-1")

        assert document["$id"] == "quiz-1"
        assert document["score"] == 80
        assert primary.create_calls == 2
        assert len(primary.list_documents("quiz-attempts")) == 1

    def test_conflict_on_first_try_propagates(self):
        primary = InMemoryDocumentStore()
        primary.create_document("quiz-attempts", {"score": 1}, document_id="quiz-1")

        with pytest.raises(ConflictError):
            ResilientStore(primary, retries=2).create_document("quiz-attempts", {"score": 2}, document_id="quiz-1")
        assert primary.get_document("quiz-attempts", "quiz-1")["score"] == 1


class TestStrictReads:
    """Tests for the fallback-free view used by guard reads."""

    def test_strict_view_raises_instead_of_falling_back(self):
        primary = Mock()
        primary.list_documents.side_effect = TransientRemoteError("down", operation="list")
        fallback = Mock()
        store = ResilientStore(primary, fallback=fallback, retries=1)

        with pytest.raises(TransientRemoteError):
            strict_reads(store).list_documents("enrollments")
        assert primary.list_documents.call_count == 2
        fallback.list_documents.assert_not_called()

    def test_strict_view_shares_primary(self):
        primary = Mock()
        strict = ResilientStore(primary, fallback=Mock(), retries=3).strict
        assert strict.primary is primary
        assert strict.fallback is None
        assert strict.retries == 3

    def test_plain_store_returned_as_is(self, store):
        assert strict_reads(store) is store
