"""Pytest configuration and fixtures.

Backends are replaced by in-memory fakes served through ``httpx.MockTransport``
so the real client code (payload builders, response parsers, error mapping)
runs in every test.
"""

import logging
import os
import tempfile

# configuration has to exist before any client or the logging setup is imported
os.environ["ROOT_DIR"] = tempfile.mkdtemp(prefix="doc_chat_tests_")
os.environ["LOG_LEVEL"] = "info"
os.environ["API_SERVER_API_KEY"] = "test-api-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EMBED_ENGINE"] = "ollama"
os.environ["EMBED_MODEL"] = "fake-embed"
os.environ["EMBED_OLLAMA_BASE_URL"] = "http://ollama.test"
os.environ["LLM_ENGINE"] = "ollama"
os.environ["LLM_CHAT_MODEL"] = "fake-chat"
os.environ["LLM_OLLAMA_BASE_URL"] = "http://ollama.test"
os.environ["RAG_ENGINE"] = "qdrant"
os.environ["RAG_QDRANT_BASE_URL"] = "http://qdrant.test"
os.environ["RAG_QDRANT_COLLECTION"] = "test-chunks"

import httpx
import pytest

from server.core.AnswerGenerator import AnswerGenerator
from server.core.DocumentService import DocumentService
from server.core.QueryService import QueryService
from server.core.Retriever import Retriever
from services.doc_ingestion.IngestionService import IngestionService
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.clients.llm.ollama.LLMClientOllama import LLMClientOllama
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.database.DatabaseManager import DatabaseManager
from shared.helper.HelperConfig import HelperConfig
from shared.repositories.ConversationRepository import ConversationRepository
from shared.repositories.DocumentRepository import DocumentRepository

from fakes import VECTOR_SIZE, FakeOllama, FakeQdrant, database_url_for

##########################################
################ FIXTURES ################
##########################################

@pytest.fixture
def helper_config():
    """Configuration backed by the test environment."""
    return HelperConfig(logger=logging.getLogger("doc_chat.tests"))


@pytest.fixture
def fake_qdrant():
    return FakeQdrant()


@pytest.fixture
def fake_ollama():
    return FakeOllama()


@pytest.fixture
async def embed_client(helper_config, fake_ollama):
    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(fake_ollama))
    yield client
    await client.close()


@pytest.fixture
async def llm_client(helper_config, fake_ollama):
    client = LLMClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(fake_ollama))
    yield client
    await client.close()


@pytest.fixture
async def rag_client(helper_config, fake_qdrant):
    client = RAGClientQdrant(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(fake_qdrant))
    await client.do_ensure_collection(vector_size=VECTOR_SIZE)
    yield client
    await client.close()


@pytest.fixture
async def database(helper_config, tmp_path):
    """Fresh database with all tables created."""
    db = DatabaseManager(helper_config=helper_config, database_url=database_url_for(tmp_path))
    await db.init_db()
    yield db
    await db.dispose()


@pytest.fixture
def document_repository(helper_config, database):
    return DocumentRepository(helper_config=helper_config, database=database)


@pytest.fixture
def conversation_repository(helper_config, database):
    return ConversationRepository(helper_config=helper_config, database=database)


@pytest.fixture
def ingestion_service(helper_config, embed_client, rag_client, document_repository):
    return IngestionService(
        helper_config=helper_config,
        embed_client=embed_client,
        rag_client=rag_client,
        document_repository=document_repository,
    )


@pytest.fixture
def retriever(helper_config, rag_client):
    return Retriever(helper_config=helper_config, rag_client=rag_client)


@pytest.fixture
def answer_generator(helper_config, llm_client):
    return AnswerGenerator(helper_config=helper_config, llm_client=llm_client)


@pytest.fixture
def query_service(helper_config, embed_client, retriever, answer_generator, conversation_repository, document_repository):
    return QueryService(
        helper_config=helper_config,
        embed_client=embed_client,
        retriever=retriever,
        answer_generator=answer_generator,
        conversations=conversation_repository,
        documents=document_repository,
    )


@pytest.fixture
def document_service(helper_config, document_repository, conversation_repository, ingestion_service):
    return DocumentService(
        helper_config=helper_config,
        documents=document_repository,
        conversations=conversation_repository,
        ingestion_service=ingestion_service,
    )


@pytest.fixture
async def indexed_document(document_repository, ingestion_service):
    """Factory creating a document record and ingesting its text synchronously."""

    async def _make(document_id: str, user_id: str, text: str, title: str = "Handbook"):
        await document_repository.create(document_id=document_id, owner_id=user_id, title=title)
        status = await ingestion_service.do_ingest(document_id=document_id, user_id=user_id, text=text)
        return status

    return _make
