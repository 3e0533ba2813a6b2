"""In-process queue for background node generation.

Jobs live in memory only; a restart forgets them and leaves their nodes in
`generating`, which callers see when they poll the node.
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from app.core.request_context import reset_request_id, set_request_id

logger = logging.getLogger(__name__)

QUEUED = "queued"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"

JobHandler = Callable[["JobRecord"], dict | None]


@dataclass
class JobRecord:
    job_id: uuid.UUID
    job_type: str
    status: str
    created_at: datetime
    updated_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None
    result: dict | None = None
    error: str | None = None
    handler: JobHandler | None = None


_jobs: dict[uuid.UUID, JobRecord] = {}
_jobs_lock = threading.Lock()
_queue: asyncio.Queue[uuid.UUID] | None = None
_worker_task: asyncio.Task | None = None
_loop: asyncio.AbstractEventLoop | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_running() -> bool:
    return _worker_task is not None


def enqueue_job(
    job_type: str,
    payload: dict[str, Any],
    handler: JobHandler,
    *,
    request_id: str | None = None,
) -> JobRecord:
    if _queue is None or _loop is None:
        raise RuntimeError("job queue is not running")

    now = _utcnow()
    job = JobRecord(
        job_id=uuid.uuid4(),
        job_type=job_type,
        status=QUEUED,
        created_at=now,
        updated_at=now,
        payload=payload,
        request_id=request_id,
        handler=handler,
    )
    with _jobs_lock:
        _jobs[job.job_id] = job

    try:
        current_loop = asyncio.get_running_loop()
    except RuntimeError:
        current_loop = None
    if current_loop is _loop:
        _queue.put_nowait(job.job_id)
    else:
        asyncio.run_coroutine_threadsafe(_queue.put(job.job_id), _loop)
    logger.info("job_enqueued job_id=%s job_type=%s", job.job_id, job_type)
    return job


def get_job(job_id: uuid.UUID) -> JobRecord | None:
    with _jobs_lock:
        return _jobs.get(job_id)


def _set_status(job: JobRecord, status: str, **fields: Any) -> None:
    with _jobs_lock:
        job.status = status
        for name, value in fields.items():
            setattr(job, name, value)
        job.updated_at = _utcnow()


def _run_handler(job: JobRecord) -> dict | None:
    token = set_request_id(job.request_id or str(job.job_id))
    try:
        if job.handler is None:
            raise RuntimeError("job handler missing")
        return job.handler(job)
    finally:
        reset_request_id(token)


async def _worker_loop() -> None:
    assert _queue is not None
    while True:
        job_id = await _queue.get()
        job = get_job(job_id)
        if job is None:
            _queue.task_done()
            continue

        _set_status(job, RUNNING)
        try:
            result = await asyncio.to_thread(_run_handler, job)
        except Exception as exc:  # noqa: BLE001
            logger.warning("job_failed job_id=%s job_type=%s error=%s", job.job_id, job.job_type, exc)
            _set_status(job, FAILED, error=str(exc))
        else:
            _set_status(job, SUCCEEDED, result=result)
        finally:
            _queue.task_done()


async def drain() -> None:
    """Wait until every queued job has been processed."""
    if _queue is not None:
        await _queue.join()


async def start_worker() -> None:
    global _queue, _worker_task, _loop
    if _worker_task is not None:
        return
    _loop = asyncio.get_running_loop()
    _queue = asyncio.Queue()
    _worker_task = asyncio.create_task(_worker_loop())


async def stop_worker() -> None:
    global _worker_task, _queue, _loop
    if _worker_task is None:
        return
    _worker_task.cancel()
    try:
        await _worker_task
    except asyncio.CancelledError:
        pass
    _worker_task = None
    _queue = None
    _loop = None
