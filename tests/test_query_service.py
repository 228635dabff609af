"""Unit tests for the QueryService (document and general chat turns)."""

from unittest.mock import AsyncMock

import pytest

from shared.exceptions import (
    DocumentNotFound,
    EmbeddingError,
    GenerationError,
    QueryCancelled,
    SessionNotFound,
)
from shared.models.chat import ChatRole

REFUNDS = "Refunds are processed within 14 days."


class TestDocumentChat:
    """Chat bound to a single document."""

    @pytest.mark.asyncio
    async def test_answers_from_the_document_and_persists_turn(self, query_service, indexed_document, conversation_repository):
        await indexed_document("d1", "u1", REFUNDS, title="Policy")

        result = await query_service.do_document_chat("u1", "d1", "How long do refunds take?")

        assert "14 days" in result.response
        assert result.chat_id
        session = await conversation_repository.get_session(result.chat_id, "u1")
        assert session.title == "Chat with Policy"
        assert session.document_id == "d1"
        assert [(m.role, m.text) for m in session.messages] == [
            (ChatRole.USER, "How long do refunds take?"),
            (ChatRole.ASSISTANT, result.response),
        ]

    @pytest.mark.asyncio
    async def test_second_turn_continues_same_session_with_history(self, query_service, indexed_document, fake_ollama, conversation_repository):
        await indexed_document("d1", "u1", REFUNDS)

        first = await query_service.do_document_chat("u1", "d1", "How long do refunds take?")
        second = await query_service.do_document_chat("u1", "d1", "And are refunds free?", chat_id=first.chat_id)

        assert second.chat_id == first.chat_id
        prompt = fake_ollama.chat_requests[-1]["messages"][0]["content"]
        assert "user: How long do refunds take?" in prompt
        assert len((await conversation_repository.get_session(first.chat_id, "u1")).messages) == 4

    @pytest.mark.asyncio
    async def test_no_chunks_yields_retrieval_empty_without_persisting(self, query_service, document_repository, conversation_repository, fake_ollama):
        """A document that is not indexed yet produces the 'no relevant documents' outcome."""
        await document_repository.create(document_id="d1", owner_id="u1", title="Empty")

        result = await query_service.do_document_chat("u1", "d1", "anything?")

        assert result.retrieval_empty is True
        assert result.response is None
        assert fake_ollama.chat_requests == []
        assert await conversation_repository.list_by_user("u1", document_id="d1") == []

    @pytest.mark.asyncio
    async def test_only_the_requested_document_is_used(self, query_service, indexed_document, fake_ollama):
        await indexed_document("d1", "u1", REFUNDS)
        await indexed_document("d2", "u1", "Shipping takes 3 days.")

        await query_service.do_document_chat("u1", "d2", "How long does shipping take?")

        prompt = fake_ollama.chat_requests[-1]["messages"][0]["content"]
        assert "Shipping takes 3 days." in prompt
        assert REFUNDS not in prompt

    @pytest.mark.asyncio
    async def test_foreign_document_is_not_found(self, query_service, indexed_document):
        await indexed_document("d1", "u1", REFUNDS)
        with pytest.raises(DocumentNotFound):
            await query_service.do_document_chat("u2", "d1", "How long do refunds take?")

    @pytest.mark.asyncio
    async def test_stale_chat_id_is_not_silently_recreated(self, query_service, indexed_document):
        await indexed_document("d1", "u1", REFUNDS)
        with pytest.raises(SessionNotFound):
            await query_service.do_document_chat("u1", "d1", "refunds?", chat_id="stale-id")

    @pytest.mark.asyncio
    async def test_embedding_failure_persists_nothing(self, query_service, indexed_document, fake_ollama, conversation_repository):
        await indexed_document("d1", "u1", REFUNDS)
        fake_ollama.fail_embed = True

        with pytest.raises(EmbeddingError):
            await query_service.do_document_chat("u1", "d1", "refunds?")
        assert await conversation_repository.list_by_user("u1", document_id="d1") == []

    @pytest.mark.asyncio
    async def test_generation_failure_persists_nothing(self, query_service, indexed_document, fake_ollama, conversation_repository):
        await indexed_document("d1", "u1", REFUNDS)
        fake_ollama.fail_chat = True

        with pytest.raises(GenerationError):
            await query_service.do_document_chat("u1", "d1", "refunds?")
        assert await conversation_repository.list_by_user("u1", document_id="d1") == []


class TestGeneralChat:
    """Chat across all documents of a user."""

    @pytest.mark.asyncio
    async def test_answers_across_documents(self, query_service, indexed_document, conversation_repository):
        await indexed_document("d1", "u1", REFUNDS)

        result = await query_service.do_general_chat("u1", "How long do refunds take?")

        assert "14 days" in result.response
        summaries = await conversation_repository.list_by_user("u1")
        assert [s.id for s in summaries] == [result.chat_id]
        assert summaries[0].title == "How long do refunds take?"

    @pytest.mark.asyncio
    async def test_new_user_without_documents_still_gets_an_answer(self, query_service, fake_ollama):
        """Zero context degrades softly in general mode."""
        fake_ollama.chat_reply = "Hello! How can I help?"

        result = await query_service.do_general_chat("new-user", "Hi there")

        assert result.retrieval_empty is False
        assert result.response == "Hello! How can I help?"
        assert result.context_chunks == 0
        prompt = fake_ollama.chat_requests[0]["messages"][0]["content"]
        assert "without mentioning the lack of context" in prompt

    @pytest.mark.asyncio
    async def test_never_sees_other_users_documents(self, query_service, indexed_document, fake_ollama):
        await indexed_document("d1", "u1", REFUNDS)

        await query_service.do_general_chat("u2", "How long do refunds take?")

        prompt = fake_ollama.chat_requests[-1]["messages"][0]["content"]
        assert REFUNDS not in prompt

    @pytest.mark.asyncio
    async def test_long_question_title_is_truncated(self, query_service, conversation_repository):
        question = "Please summarise every single policy that applies to refunds and returns"

        result = await query_service.do_general_chat("u1", question)

        session = await conversation_repository.get_session(result.chat_id, "u1")
        assert session.title == question[:40] + "..."

    @pytest.mark.asyncio
    async def test_document_chat_id_cannot_be_used_for_general_chat(self, query_service, indexed_document):
        await indexed_document("d1", "u1", REFUNDS)
        doc_turn = await query_service.do_document_chat("u1", "d1", "refunds?")

        with pytest.raises(SessionNotFound):
            await query_service.do_general_chat("u1", "refunds?", chat_id=doc_turn.chat_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", None])
    async def test_blank_query_is_rejected(self, query_service, query):
        with pytest.raises(ValueError):
            await query_service.do_general_chat("u1", query)


class TestCancellation:
    """A disconnected caller leaves the history untouched."""

    @pytest.mark.asyncio
    async def test_cancelled_turn_is_not_persisted(self, query_service, indexed_document, conversation_repository):
        await indexed_document("d1", "u1", REFUNDS)

        with pytest.raises(QueryCancelled):
            await query_service.do_general_chat("u1", "refunds?", is_cancelled=AsyncMock(return_value=True))

        assert await conversation_repository.list_by_user("u1") == []

    @pytest.mark.asyncio
    async def test_connected_caller_is_persisted(self, query_service, indexed_document, conversation_repository):
        await indexed_document("d1", "u1", REFUNDS)
        is_cancelled = AsyncMock(return_value=False)

        result = await query_service.do_general_chat("u1", "refunds?", is_cancelled=is_cancelled)

        is_cancelled.assert_awaited_once()
        assert [s.id for s in await conversation_repository.list_by_user("u1")] == [result.chat_id]


class TestSemanticSearch:
    """Finding the user's documents by meaning."""

    @pytest.mark.asyncio
    async def test_returns_the_users_documents_best_match_first(self, query_service, indexed_document):
        await indexed_document("d1", "u1", REFUNDS, title="Policy")
        await indexed_document("d2", "u1", "Shipping takes 3 days.", title="Shipping")
        await indexed_document("d3", "u2", REFUNDS, title="Foreign policy")

        documents = await query_service.do_semantic_search("u1", "refunds processed within 14 days")

        assert [d.id for d in documents] == ["d1", "d2"]
        assert documents[0].title == "Policy"

    @pytest.mark.asyncio
    async def test_documents_without_record_are_skipped(self, query_service, indexed_document, document_repository):
        await indexed_document("d1", "u1", REFUNDS)
        await indexed_document("d2", "u1", "Refunds need a receipt.")
        await document_repository.delete("d2")

        documents = await query_service.do_semantic_search("u1", "refunds")

        assert [d.id for d in documents] == ["d1"]

    @pytest.mark.asyncio
    async def test_user_without_documents_gets_empty_list(self, query_service):
        assert await query_service.do_semantic_search("new-user", "refunds") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", None])
    async def test_blank_query_is_rejected(self, query_service, query):
        with pytest.raises(ValueError):
            await query_service.do_semantic_search("u1", query)

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, query_service, fake_ollama):
        fake_ollama.fail_embed = True
        with pytest.raises(EmbeddingError):
            await query_service.do_semantic_search("u1", "refunds")
