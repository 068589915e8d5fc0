"""Stored property documents: contract uploads and inbound email attachments."""

import asyncio
import hashlib
import logging
import uuid
from pathlib import Path
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homestretch.app.config import get_settings
from homestretch.domain.enums import DocumentSource
from homestretch.domain.models import PropertyDocument, db_now

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"

_UNSAFE_FILENAME = "/\\\x00"


def sha256_hex(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def _safe_filename(filename: str) -> str:
    cleaned = "".join("_" if ch in _UNSAFE_FILENAME else ch for ch in filename).strip()
    return cleaned or "attachment"


class DocumentStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, document_id: str) -> Optional[PropertyDocument]:
        return await self.db.get(PropertyDocument, document_id)

    async def list_by_property(self, property_id: str) -> list[PropertyDocument]:
        """All documents for a property, newest first."""
        result = await self.db.execute(
            select(PropertyDocument)
            .where(PropertyDocument.property_id == property_id)
            .order_by(PropertyDocument.created_at.desc(), PropertyDocument.id.desc())
        )
        return list(result.scalars().all())

    async def list_by_message(self, message_id: str) -> list[PropertyDocument]:
        result = await self.db.execute(
            select(PropertyDocument)
            .where(PropertyDocument.message_id == message_id)
            .order_by(PropertyDocument.created_at, PropertyDocument.id)
        )
        return list(result.scalars().all())

    async def resolve_contract(
        self,
        property_id: str,
        doc_hash: Optional[str],
    ) -> Optional[PropertyDocument]:
        """Exact doc-hash match first, else the most recent PDF for the property."""
        documents = await self.list_by_property(property_id)
        if doc_hash:
            for document in documents:
                if document.doc_hash == doc_hash:
                    return document
        for document in documents:
            if document.mime_type == PDF_MIME_TYPE:
                return document
        return None

    async def save(
        self,
        property_id: str,
        filename: str,
        mime_type: str,
        content: bytes,
        source: DocumentSource = DocumentSource.EMAIL_INTAKE,
        message_id: Optional[str] = None,
    ) -> PropertyDocument:
        """Write the file under ``attachments_dir/<property_id>/`` and record it."""
        document_id = str(uuid.uuid4())
        directory = Path(get_settings().attachments_dir) / property_id
        path = directory / f"{document_id}-{_safe_filename(filename)}"

        def _write() -> None:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        await asyncio.to_thread(_write)

        document = PropertyDocument(
            id=document_id,
            property_id=property_id,
            filename=filename,
            file_path=str(path),
            mime_type=mime_type,
            size_bytes=len(content),
            doc_hash=sha256_hex(content),
            source=source.value,
            message_id=message_id,
            created_at=db_now(),
        )
        self.db.add(document)
        await self.db.flush()
        logger.info("Stored document %s (%s, %d bytes)", document.id, filename, len(content))
        return document

    async def read_bytes(self, document: PropertyDocument) -> bytes:
        return await asyncio.to_thread(Path(document.file_path).read_bytes)
