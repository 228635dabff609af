"""Ingestion runner entry point.

Indexes a local, already extracted text file for one user without going
through the HTTP API. Useful for seeding and for re-indexing after changing
the embedding model.

Usage:
    python -m services.doc_ingestion.ingest_runner --file notes.txt --user-id u1 [--document-id d1] [--title "Notes"]
"""

import argparse
import asyncio
import os
import uuid

from services.doc_ingestion.IngestionService import IngestionService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.database.DatabaseManager import DatabaseManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.document import IngestionStatus
from shared.repositories.DocumentRepository import DocumentRepository


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chunk, embed and index a text file for one user.")
    parser.add_argument("--file", required=True, help="UTF-8 text file with the document's extracted text")
    parser.add_argument("--user-id", required=True, help="owner of the document")
    parser.add_argument("--document-id", default=None, help="existing or new document id (random if omitted)")
    parser.add_argument("--title", default=None, help="document title (file name if omitted)")
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    """Run the ingestion pipeline once. Returns the process exit code."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    with open(args.file, encoding="utf-8") as fh:
        text = fh.read()
    document_id = args.document_id or str(uuid.uuid4())
    title = args.title or os.path.basename(args.file)

    embed_client = EmbedClientManager(helper_config=config).get_client()
    rag_client = RAGClientManager(helper_config=config).get_client()
    database = DatabaseManager(helper_config=config)

    try:
        # embed client is required, there is no point in indexing without vectors
        try:
            await embed_client.boot()
            await embed_client.do_healthcheck()
        except Exception as e:
            logger.error(f"Error booting Embed client {embed_client.get_engine_name()}: {e}. Aborting.")
            return 1

        try:
            await rag_client.boot()
            await rag_client.do_healthcheck()
        except Exception as e:
            logger.error(f"Error booting RAG client {rag_client.get_engine_name()}: {e}. Aborting.")
            return 1

        vector_size, distance = await embed_client.do_fetch_embedding_vector_size()
        await rag_client.do_ensure_collection(vector_size=vector_size, distance=distance)
        await database.init_db()

        documents = DocumentRepository(helper_config=config, database=database)
        existing = await documents.get(document_id)
        if existing is None:
            await documents.create(document_id=document_id, owner_id=args.user_id, title=title)
        elif existing.owner_id != args.user_id:
            logger.error("Document %s belongs to another user. Aborting.", document_id)
            return 1

        ingestion_service = IngestionService(
            helper_config=config,
            embed_client=embed_client,
            rag_client=rag_client,
            document_repository=documents,
        )
        status = await ingestion_service.do_ingest(document_id=document_id, user_id=args.user_id, text=text)
        logger.info("Document %s ('%s') finished with status '%s'.", document_id, title, status.value)
        return 0 if status == IngestionStatus.INDEXED else 1
    finally:
        await embed_client.close()
        await rag_client.close()
        await database.dispose()


def cli() -> None:
    raise SystemExit(asyncio.run(main(_parse_args())))


if __name__ == "__main__":
    cli()
