import uuid

from fastapi import APIRouter, HTTPException

from app.api.v1.schemas import JobStatusRead
from app.services import job_queue


router = APIRouter(tags=["jobs"])


@router.get("/jobs/{job_id}", response_model=JobStatusRead)
def get_job(job_id: uuid.UUID):
    """Background generation status; poll `/v1/nodes/{node_id}` for the node itself."""
    job = job_queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job not found")
    node_id = job.payload.get("node_id")
    return JobStatusRead(
        job_id=job.job_id,
        job_type=job.job_type,
        status=job.status,
        node_id=uuid.UUID(node_id) if node_id else None,
        created_at=job.created_at,
        updated_at=job.updated_at,
        result=job.result,
        error=job.error,
    )
