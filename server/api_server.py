"""FastAPI application entry point for doc_chat_bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.exceptions import DocChatError
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.database.DatabaseManager import DatabaseManager
from shared.repositories.ConversationRepository import ConversationRepository
from shared.repositories.DocumentRepository import DocumentRepository
from services.doc_ingestion.IngestionService import IngestionService
from server.core.AnswerGenerator import AnswerGenerator
from server.core.DocumentService import DocumentService
from server.core.QueryService import QueryService
from server.core.Retriever import Retriever
from server.dependencies.auth import verify_api_key
from server.models.responses import HealthResponse
from server.routers.ChatRouter import router as chat_router
from server.routers.DocumentRouter import router as document_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

GENERIC_ERROR_MESSAGE = "ran into an error, please try again"


def init_app_state(
    state,
    helper_config: HelperConfig,
    embed_client: EmbedClientInterface,
    rag_client: RAGClientInterface,
    llm_client: LLMClientInterface,
    database: DatabaseManager,
) -> None:
    """Construct repositories and services around booted clients and store them on ``app.state``."""
    state.helper_config = helper_config
    state.embed_client = embed_client
    state.rag_client = rag_client
    state.llm_client = llm_client
    state.database = database

    state.document_repository = DocumentRepository(helper_config=helper_config, database=database)
    state.conversation_repository = ConversationRepository(helper_config=helper_config, database=database)

    state.ingestion_service = IngestionService(
        helper_config=helper_config,
        embed_client=embed_client,
        rag_client=rag_client,
        document_repository=state.document_repository,
    )
    state.query_service = QueryService(
        helper_config=helper_config,
        embed_client=embed_client,
        retriever=Retriever(helper_config=helper_config, rag_client=rag_client),
        answer_generator=AnswerGenerator(helper_config=helper_config, llm_client=llm_client),
        conversations=state.conversation_repository,
        documents=state.document_repository,
    )
    state.document_service = DocumentService(
        helper_config=helper_config,
        documents=state.document_repository,
        conversations=state.conversation_repository,
        ingestion_service=state.ingestion_service,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    helper_config = HelperConfig(logger=logging)
    # fail fast instead of rejecting every request later
    helper_config.get_string_val("API_SERVER_API_KEY")

    embed_client = EmbedClientManager(helper_config=helper_config).get_client()
    rag_client = RAGClientManager(helper_config=helper_config).get_client()
    llm_client = LLMClientManager(helper_config=helper_config).get_client()
    clients: list[ClientInterface] = [embed_client, rag_client, llm_client]

    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    await check_connections(embed_client, rag_client, llm_client)

    vector_size, distance = await embed_client.do_fetch_embedding_vector_size()
    await rag_client.do_ensure_collection(vector_size=vector_size, distance=distance)

    database = DatabaseManager(helper_config=helper_config)
    await database.init_db()

    init_app_state(app.state, helper_config, embed_client, rag_client, llm_client, database)

    # while the app is running...
    yield

    # when the app shuts down, let running ingestions finish, then close all connections
    logging.info("Shutting down, waiting for %d ingestion(s)...", app.state.ingestion_service.get_pending_count())
    await app.state.ingestion_service.do_drain()
    for client in clients:
        await client.close()
    await database.dispose()
    logging.info("All clients closed.")


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP responses."""

    @app.exception_handler(DocChatError)
    async def doc_chat_error_handler(request: Request, exc: DocChatError) -> JSONResponse:
        log = logging.warning if exc.status_code < 500 else logging.error
        log("%s %s -> %d %s: %s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
        body = exc.to_dict()
        if exc.status_code >= 500:
            # backend details stay in the log
            body["message"] = GENERIC_ERROR_MESSAGE
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logging.warning("%s %s -> 400: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"message": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logging.error("%s %s -> 500: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"message": GENERIC_ERROR_MESSAGE})


def register_routes(app: FastAPI) -> None:
    # chat routes first: "/documents/chat/ask" must not be taken for a document id
    app.include_router(chat_router)
    app.include_router(document_router)

    @app.get("/health", dependencies=[Depends(verify_api_key)])
    async def health(request: Request) -> HealthResponse:
        """Report which backends answer their health check."""
        backends: dict[str, bool] = {}
        for client in (request.app.state.embed_client, request.app.state.rag_client, request.app.state.llm_client):
            name = f"{client.get_client_type()}:{client.get_engine_name()}"
            try:
                backends[name] = (await client.do_healthcheck()).is_success
            except httpx.HTTPError as exc:
                logging.warning("Health check of %s failed: %s", name, exc)
                backends[name] = False
        return HealthResponse(status="ok" if all(backends.values()) else "degraded", backends=backends)


app = FastAPI(
    title="doc_chat_bridge",
    description=(
        "Chat with your documents. Registered document text is chunked, embedded and "
        "indexed into a vector database in the background; questions are answered by "
        "a language model grounded on the most similar chunks of the user's documents. "
        "Chat sessions are persisted per user."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
register_routes(app)


async def check_connections(
    embed_client: EmbedClientInterface,
    rag_client: RAGClientInterface,
    llm_client: LLMClientInterface,
) -> None:
    """Check connectivity to all configured backends on startup.

    All three are fatal: without embeddings, the index or the language model
    no chat turn can be served.

    Raises:
        Exception: If a backend is not reachable.
    """
    for client in (embed_client, rag_client, llm_client):
        result: httpx.Response = await client.do_healthcheck()
        if not result.is_success:
            raise Exception(
                f"{client.get_client_type()} client '{client.__class__.__name__}' is not reachable "
                f"(status {result.status_code}). Cannot serve chats."
            )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting doc_chat_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
