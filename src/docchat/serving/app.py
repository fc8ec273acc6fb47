"""FastAPI application exposing document upload and chat as a REST API."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, Request, UploadFile, status
from pydantic import BaseModel, Field

from docchat.config import settings
from docchat.errors import InitializationError, QueryError
from docchat.ingestion.extractor import FileType
from docchat.pipeline.collaborators import InMemoryDocumentRegistry
from docchat.pipeline.models import DocumentRecord, DocumentStatus, PipelineStats, QueryResult
from docchat.pipeline.orchestrator import RAGPipeline
from docchat.pipeline.queue import IngestionQueue, IngestionTask

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """Incoming question from the user."""

    question: str = Field(min_length=1)
    document_id: str | None = None
    max_sources: int = Field(default=settings.max_sources, ge=1, le=20)
    include_context: bool = True


class DocumentAccepted(BaseModel):
    """Returned when an upload or reprocess request has been queued."""

    document_id: str
    correlation_id: str
    status: DocumentStatus = DocumentStatus.PROCESSING


class DocumentInfo(BaseModel):
    document_id: str
    original_name: str
    file_type: FileType
    file_size: int
    status: DocumentStatus | None


class DeleteResponse(BaseModel):
    document_id: str
    deleted_entries: int


# ── Application factory ───────────────────────────────────────────────
def create_app(pipeline: RAGPipeline | None = None) -> FastAPI:
    """Build the API around *pipeline* (a default one when omitted).

    The pipeline's document store must be an :class:`InMemoryDocumentRegistry`
    because the upload routes keep the document records there.
    """
    pipeline = pipeline or RAGPipeline(documents=InMemoryDocumentRegistry())
    if not isinstance(pipeline.documents, InMemoryDocumentRegistry):
        raise TypeError("the served pipeline needs an InMemoryDocumentRegistry document store")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = pipeline.config
        logging.basicConfig(level=cfg.log_level)
        snapshot = Path(cfg.vector_snapshot_path) if cfg.vector_snapshot_path else None
        if snapshot is not None and snapshot.exists():
            pipeline.load_snapshot(snapshot)
        if not pipeline.initialized:
            await pipeline.initialize()

        queue = IngestionQueue(pipeline, workers=cfg.ingestion_workers, task_history=cfg.ingestion_task_history)
        queue.start()
        app.state.queue = queue
        try:
            yield
        finally:
            await queue.stop()
            if snapshot is not None:
                pipeline.save_snapshot(snapshot)

    app = FastAPI(
        title="DocChat RAG API",
        version="0.1.0",
        description="Upload PDF/DOCX documents and ask questions about them.",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    _register_routes(app)
    return app


def _pipeline(request: Request) -> RAGPipeline:
    return request.app.state.pipeline


def _registry(request: Request) -> InMemoryDocumentRegistry:
    return request.app.state.pipeline.documents


def _queue(request: Request) -> IngestionQueue:
    return request.app.state.queue


# ── Routes ────────────────────────────────────────────────────────────
def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness check."""
        return {"status": "ok"}

    @app.post("/documents", response_model=DocumentAccepted, status_code=status.HTTP_202_ACCEPTED)
    async def upload_document(request: Request, file: UploadFile = File(...)) -> DocumentAccepted:
        """Store the upload in memory and queue it for ingestion."""
        filename = file.filename or ""
        try:
            file_type = FileType.from_filename(filename)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail="Only PDF and DOCX files are supported",
            ) from None

        content = await file.read()
        record = DocumentRecord(
            id=uuid.uuid4().hex,
            original_name=filename,
            file_type=file_type,
            file_size=len(content),
            content=content,
        )
        logger.info("Accepted upload %s (%d bytes) as document %s", filename, len(content), record.id)
        registry = _registry(request)
        registry.register(record)
        await registry.set_status(record.id, DocumentStatus.PROCESSING)
        correlation_id = _queue(request).submit(record)
        return DocumentAccepted(document_id=record.id, correlation_id=correlation_id)

    @app.get("/documents/{document_id}", response_model=DocumentInfo)
    async def get_document(request: Request, document_id: str) -> DocumentInfo:
        registry = _registry(request)
        record = registry.get(document_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return DocumentInfo(
            document_id=record.id,
            original_name=record.original_name,
            file_type=record.file_type,
            file_size=record.file_size,
            status=await registry.get_status(document_id),
        )

    @app.post(
        "/documents/{document_id}/reprocess",
        response_model=DocumentAccepted,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def reprocess_document(request: Request, document_id: str) -> DocumentAccepted:
        """Re-run ingestion for an already uploaded document."""
        record = _registry(request).get(document_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Document not found")
        correlation_id = _queue(request).submit(record)
        return DocumentAccepted(document_id=record.id, correlation_id=correlation_id)

    @app.delete("/documents/{document_id}", response_model=DeleteResponse)
    async def delete_document(request: Request, document_id: str) -> DeleteResponse:
        registry = _registry(request)
        if registry.get(document_id) is None:
            raise HTTPException(status_code=404, detail="Document not found")
        removed = await _queue(request).delete(document_id)
        registry.remove(document_id)
        return DeleteResponse(document_id=document_id, deleted_entries=removed)

    @app.get("/tasks/{correlation_id}", response_model=IngestionTask)
    async def get_task(request: Request, correlation_id: str) -> IngestionTask:
        task = _queue(request).get(correlation_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    @app.post("/query", response_model=QueryResult)
    async def query(request: Request, body: QueryRequest) -> QueryResult:
        """Answer a question from the uploaded documents."""
        try:
            return await _pipeline(request).query(
                body.question,
                body.document_id,
                max_sources=body.max_sources,
                include_context=body.include_context,
            )
        except QueryError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.user_message) from exc
        except InitializationError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    @app.get("/stats", response_model=PipelineStats)
    async def stats(request: Request) -> PipelineStats:
        return await _pipeline(request).get_stats()


app = create_app()


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("docchat.serving.app:app", host="0.0.0.0", port=8000)
