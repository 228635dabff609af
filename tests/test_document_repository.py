"""Unit tests for the DocumentRepository."""

import pytest

from shared.exceptions import DocumentNotFound
from shared.models.document import IngestionStatus


class TestLookup:
    @pytest.mark.asyncio
    async def test_get_for_owner_hides_foreign_documents(self, document_repository):
        await document_repository.create(document_id="d1", owner_id="u1", title="Policy")

        assert (await document_repository.get_for_owner("d1", "u1")).title == "Policy"
        with pytest.raises(DocumentNotFound):
            await document_repository.get_for_owner("d1", "u2")

    @pytest.mark.asyncio
    async def test_find_by_owner_restricted_to_ids(self, document_repository):
        for document_id, owner_id in (("d1", "u1"), ("d2", "u1"), ("d3", "u2")):
            await document_repository.create(document_id=document_id, owner_id=owner_id, title=document_id)

        assert {d.id for d in await document_repository.find_by_owner("u1")} == {"d1", "d2"}
        assert [d.id for d in await document_repository.find_by_owner("u1", document_ids=["d2", "d3"])] == ["d2"]
        assert await document_repository.find_by_owner("u1", document_ids=[]) == []


class TestIngestionStatus:
    @pytest.mark.asyncio
    async def test_error_is_kept_only_for_failed(self, document_repository):
        await document_repository.create(document_id="d1", owner_id="u1", title="Policy")

        await document_repository.set_ingestion_status("d1", IngestionStatus.FAILED, error="boom")
        assert (await document_repository.get("d1")).ingestion_error == "boom"

        await document_repository.set_ingestion_status("d1", IngestionStatus.INDEXED, chunk_count=2)
        document = await document_repository.get("d1")
        assert document.ingestion_error is None
        assert document.chunk_count == 2

    @pytest.mark.asyncio
    async def test_unknown_document_is_ignored(self, document_repository):
        await document_repository.set_ingestion_status("missing", IngestionStatus.INDEXED)
        assert await document_repository.get("missing") is None
