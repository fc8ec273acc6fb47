"""Background ingestion queue.

Uploads return immediately with a correlation id; a small pool of worker
tasks runs :meth:`RAGPipeline.process_document` in the background.  Work
for the same document id, including its deletion, is serialised;
different documents ingest concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from docchat.config import settings
from docchat.pipeline.locks import DocumentLocks
from docchat.pipeline.models import DocumentRecord, IngestionReport

if TYPE_CHECKING:
    from docchat.pipeline.orchestrator import RAGPipeline

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class IngestionTask(BaseModel):
    """Progress of one submitted ingestion, addressed by ``correlation_id``."""

    correlation_id: str
    document_id: str
    state: TaskState = TaskState.QUEUED
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    report: IngestionReport | None = None
    error: str | None = None


class IngestionQueue:
    """Run document ingestion on ``workers`` background tasks.

    Parameters
    ----------
    pipeline:
        An initialised :class:`RAGPipeline`.
    workers:
        Number of concurrent worker tasks.
    task_history:
        Finished task records kept for :meth:`get`; older ones are dropped.
    """

    def __init__(
        self,
        pipeline: RAGPipeline,
        *,
        workers: int = settings.ingestion_workers,
        task_history: int = settings.ingestion_task_history,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if task_history < 1:
            raise ValueError("task_history must be at least 1")
        self.pipeline = pipeline
        self.workers = workers
        self.task_history = task_history
        self._queue: asyncio.Queue[tuple[str, DocumentRecord]] = asyncio.Queue()
        self._tasks: dict[str, IngestionTask] = {}
        self._finished: deque[str] = deque()
        self._doc_locks = DocumentLocks()
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"ingestion-worker-{n}")
            for n in range(self.workers)
        ]
        logger.info("Started %d ingestion workers", self.workers)

    async def stop(self) -> None:
        """Cancel the workers.  Queued work that has not started is dropped."""
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Stopped ingestion workers")

    def submit(self, document: DocumentRecord) -> str:
        """Queue *document* for ingestion and return its correlation id."""
        correlation_id = uuid.uuid4().hex
        self._tasks[correlation_id] = IngestionTask(correlation_id=correlation_id, document_id=document.id)
        self._queue.put_nowait((correlation_id, document))
        logger.info("Queued document %s (correlation id %s)", document.id, correlation_id)
        return correlation_id

    async def delete(self, document_id: str) -> int:
        """Delete *document_id* from the pipeline once its running ingestion ends.

        Ingestions of the document still waiting in the queue are cancelled
        so they cannot bring it back.  Returns the number of removed vectors.
        """
        for task in list(self._tasks.values()):
            if task.document_id == document_id and task.state is TaskState.QUEUED:
                self._finish(task, TaskState.CANCELLED, error="document deleted")
        async with self._doc_locks.hold(document_id):
            return await self.pipeline.delete_document(document_id)

    def get(self, correlation_id: str) -> IngestionTask | None:
        return self._tasks.get(correlation_id)

    async def join(self) -> None:
        """Wait until every submitted document has been processed."""
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            correlation_id, document = await self._queue.get()
            try:
                await self._run(correlation_id, document)
            finally:
                self._queue.task_done()

    async def _run(self, correlation_id: str, document: DocumentRecord) -> None:
        task = self._tasks.get(correlation_id)
        if task is None or task.state is TaskState.CANCELLED:
            logger.info("Skipping cancelled ingestion %s of document %s", correlation_id, document.id)
            return
        async with self._doc_locks.hold(document.id):
            if task.state is TaskState.CANCELLED:
                return
            task.state = TaskState.RUNNING
            try:
                report = await self.pipeline.process_document(document)
            except Exception as exc:
                logger.exception("Ingestion task %s failed", correlation_id)
                self._finish(task, TaskState.FAILED, error=str(exc))
            else:
                task.report = report
                self._finish(task, TaskState.DONE if report.error is None else TaskState.FAILED, error=report.error)

    def _finish(self, task: IngestionTask, state: TaskState, *, error: str | None = None) -> None:
        task.state = state
        task.error = error
        task.finished_at = datetime.now(timezone.utc)
        self._finished.append(task.correlation_id)
        while len(self._finished) > self.task_history:
            self._tasks.pop(self._finished.popleft(), None)
