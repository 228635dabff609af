"""API tests for the document and chat routes."""

import logging
import time
from contextlib import asynccontextmanager

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from server.api_server import init_app_state, register_exception_handlers, register_routes
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.clients.llm.ollama.LLMClientOllama import LLMClientOllama
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.database.DatabaseManager import DatabaseManager
from shared.helper.HelperConfig import HelperConfig

from fakes import VECTOR_SIZE, FakeOllama, FakeQdrant, database_url_for

API_KEY = "test-api-key"
REFUNDS = "Refunds are processed within 14 days."


def headers(user_id: str = "u1") -> dict:
    return {"X-Api-Key": API_KEY, "X-User-Id": user_id}


def build_app(fake_ollama: FakeOllama, fake_qdrant: FakeQdrant, database_url: str) -> FastAPI:
    """Same routes and handlers as the service, wired to in-memory backends."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        helper_config = HelperConfig(logger=logging.getLogger("doc_chat.tests"))
        embed_client = EmbedClientOllama(helper_config=helper_config)
        llm_client = LLMClientOllama(helper_config=helper_config)
        rag_client = RAGClientQdrant(helper_config=helper_config)
        await embed_client.boot(transport=httpx.MockTransport(fake_ollama))
        await llm_client.boot(transport=httpx.MockTransport(fake_ollama))
        await rag_client.boot(transport=httpx.MockTransport(fake_qdrant))
        await rag_client.do_ensure_collection(vector_size=VECTOR_SIZE)
        database = DatabaseManager(helper_config=helper_config, database_url=database_url)
        await database.init_db()

        init_app_state(app.state, helper_config, embed_client, rag_client, llm_client, database)
        yield
        await app.state.ingestion_service.do_drain()
        for client in (embed_client, llm_client, rag_client):
            await client.close()
        await database.dispose()

    app = FastAPI(lifespan=lifespan)
    register_exception_handlers(app)
    register_routes(app)
    return app


@pytest.fixture
def fake_backends():
    return FakeOllama(), FakeQdrant()


@pytest.fixture
def client(fake_backends, tmp_path):
    app = build_app(*fake_backends, database_url=database_url_for(tmp_path))
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def wait_for_status(client: TestClient, document_id: str, user_id: str = "u1", timeout: float = 5.0) -> dict:
    """Poll the status route until ingestion reaches a terminal state."""
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/documents/{document_id}/status", headers=headers(user_id)).json()
        if body["status"] in ("indexed", "failed") or time.monotonic() > deadline:
            return body
        time.sleep(0.02)


def register(client: TestClient, document_id: str, text: str, user_id: str = "u1", title: str = "Policy") -> dict:
    response = client.post(
        "/documents",
        json={"title": title, "text": text, "document_id": document_id},
        headers=headers(user_id),
    )
    assert response.status_code == 202
    return wait_for_status(client, document_id, user_id)


class TestAuth:
    def test_missing_api_key_is_rejected(self, client):
        response = client.get("/documents/chathistories", headers={"X-User-Id": "u1"})
        assert response.status_code in (401, 422)

    def test_wrong_api_key_is_rejected(self, client):
        response = client.get("/documents/chathistories", headers={"X-Api-Key": "nope", "X-User-Id": "u1"})
        assert response.status_code == 401

    def test_health_reports_backends(self, client):
        response = client.get("/health", headers=headers())
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestDocuments:
    def test_register_then_indexed(self, client):
        status = register(client, "d1", REFUNDS)
        assert status["status"] == "indexed"
        assert status["chunk_count"] == 1

    def test_empty_text_is_reported_as_failed(self, client):
        status = register(client, "d1", "   ")
        assert status["status"] == "failed"
        assert status["error"] == "no text"

    def test_status_of_foreign_document_is_404(self, client):
        register(client, "d1", REFUNDS)
        response = client.get("/documents/d1/status", headers=headers("u2"))
        assert response.status_code == 404

    def test_reindex_replaces_content(self, client, fake_backends):
        _, fake_qdrant = fake_backends
        register(client, "d1", REFUNDS)

        response = client.post("/documents/d1/reindex", json={"text": "Shipping is free."}, headers=headers())
        assert response.status_code == 202
        assert wait_for_status(client, "d1")["status"] == "indexed"

        texts = [p["payload"]["text"] for p in fake_qdrant.points.values()]
        assert texts == ["Shipping is free."]

    def test_delete_cascades_to_points_and_chats(self, client, fake_backends):
        _, fake_qdrant = fake_backends
        register(client, "d1", REFUNDS)
        chat_id = client.post("/documents/d1/chat", json={"query": "refunds?"}, headers=headers()).json()["chatId"]

        response = client.delete("/documents/d1", headers=headers())

        assert response.status_code == 200
        assert fake_qdrant.count(document_id="d1") == 0
        assert client.get(f"/documents/chathistory/{chat_id}", headers=headers()).status_code == 404
        assert client.get("/documents/d1/status", headers=headers()).status_code == 404

    def test_semantic_search_lists_matching_documents(self, client):
        register(client, "d1", REFUNDS, title="Refund policy")
        register(client, "d2", REFUNDS, user_id="u2", title="Foreign")

        response = client.post("/documents/semantic-search", json={"query": "refunds"}, headers=headers())

        assert response.status_code == 200
        assert [(d["document_id"], d["title"]) for d in response.json()] == [("d1", "Refund policy")]

    @pytest.mark.parametrize("payload", [{}, {"query": "  "}])
    def test_semantic_search_requires_a_query(self, client, payload):
        response = client.post("/documents/semantic-search", json=payload, headers=headers())
        assert response.status_code == 400


class TestChat:
    def test_document_chat_roundtrip(self, client):
        register(client, "d1", REFUNDS)

        first = client.post("/documents/d1/chat", json={"query": "How long do refunds take?"}, headers=headers())
        assert first.status_code == 200
        body = first.json()
        assert "14 days" in body["response"]

        second = client.post(
            "/documents/d1/chat",
            json={"query": "Any exceptions?", "chatId": body["chatId"]},
            headers=headers(),
        )
        assert second.json()["chatId"] == body["chatId"]

        history = client.get(f"/documents/chathistory/{body['chatId']}", headers=headers()).json()
        assert len(history["messages"]) == 4
        assert history["documentId"] == "d1"

        listing = client.get("/documents/d1/chatHistory", headers=headers()).json()
        assert [item["id"] for item in listing] == [body["chatId"]]
        assert "updatedAt" in listing[0]

    def test_document_without_relevant_chunks_is_404(self, client):
        register(client, "d1", "   ")

        response = client.post("/documents/d1/chat", json={"query": "refunds?"}, headers=headers())

        assert response.status_code == 404
        assert response.json() == {"message": "No relevant documents found."}

    def test_unknown_chat_id_is_404(self, client):
        register(client, "d1", REFUNDS)
        response = client.post("/documents/d1/chat", json={"query": "q", "chatId": "stale"}, headers=headers())
        assert response.status_code == 404

    def test_general_chat_soft_degrades_for_new_user(self, client):
        response = client.post("/documents/chat/ask", json={"query": "Hello?"}, headers=headers("new-user"))

        assert response.status_code == 200
        assert response.json()["chatId"]

        listing = client.get("/documents/chathistories", headers=headers("new-user")).json()
        assert [item["title"] for item in listing] == ["Hello?"]

    def test_general_listing_excludes_document_chats(self, client):
        register(client, "d1", REFUNDS)
        client.post("/documents/d1/chat", json={"query": "refunds?"}, headers=headers())
        general = client.post("/documents/chat/ask", json={"query": "refunds?"}, headers=headers()).json()

        listing = client.get("/documents/chathistories", headers=headers()).json()

        assert [item["id"] for item in listing] == [general["chatId"]]

    @pytest.mark.parametrize("payload", [{}, {"query": ""}, {"query": "   "}])
    def test_blank_query_is_400(self, client, payload):
        response = client.post("/documents/chat/ask", json=payload, headers=headers())
        assert response.status_code == 400

    def test_embedding_failure_is_400(self, client, fake_backends):
        fake_ollama, _ = fake_backends
        fake_ollama.fail_embed = True

        response = client.post("/documents/chat/ask", json={"query": "refunds?"}, headers=headers())

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EMBEDDING_ERROR"

    def test_generation_failure_is_generic_500(self, client, fake_backends):
        fake_ollama, _ = fake_backends
        fake_ollama.fail_chat = True

        response = client.post("/documents/chat/ask", json={"query": "refunds?"}, headers=headers())

        assert response.status_code == 500
        assert response.json()["message"] == "ran into an error, please try again"

    def test_other_users_history_is_404(self, client):
        chat_id = client.post("/documents/chat/ask", json={"query": "hi"}, headers=headers("u1")).json()["chatId"]
        assert client.get(f"/documents/chathistory/{chat_id}", headers=headers("u2")).status_code == 404
