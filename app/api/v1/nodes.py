import uuid

from fastapi import APIRouter, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.api.deps import AssemblerDep
from app.api.v1.schemas import NodeCreate, NodeCreated, NodeRead
from app.core.exceptions import EntityNotFoundError
from app.core.request_context import get_request_id
from app.graphs.node_assembler import NodeAssembler, NodeCreateRequest
from app.graphs.schemas import UserPreferences
from app.services import job_queue
from app.services.node_store import NodeRecord


router = APIRouter(tags=["nodes"])


def enqueue_generation(
    assembler: NodeAssembler,
    node: NodeRecord,
    preferences: UserPreferences | None = None,
) -> job_queue.JobRecord:
    def _handler(job: job_queue.JobRecord) -> dict:
        finalized = assembler.generate(node.node_id, preferences=preferences)
        return {"node_id": str(finalized.node_id), "status": finalized.status}

    return job_queue.enqueue_job(
        "generate_node",
        {"node_id": str(node.node_id), "session_id": str(node.session_id)},
        _handler,
        request_id=get_request_id(),
    )


@router.post("/sessions/{session_id}/nodes", response_model=NodeCreated, status_code=201)
def create_node(session_id: uuid.UUID, payload: NodeCreate, response: Response, assembler=AssemblerDep):
    request = NodeCreateRequest(
        session_id=session_id,
        parent_node_id=payload.parent_node_id,
        choice=payload.choice,
        preferences=payload.user_preferences,
    )
    if payload.run_in_background:
        node = assembler.prepare(request)
        job = enqueue_generation(assembler, node, payload.user_preferences)
        response.status_code = 202
        return NodeCreated(node=NodeRead.model_validate(node), job_id=job.job_id)

    node = assembler.create_node(request)
    return NodeCreated(node=NodeRead.model_validate(node))


@router.get("/nodes/{node_id}", response_model=NodeRead)
def get_node(node_id: uuid.UUID, assembler=AssemblerDep):
    return NodeRead.model_validate(_node_or_404(assembler, node_id))


@router.get("/nodes/{node_id}/export")
def export_node(node_id: uuid.UUID, assembler=AssemblerDep):
    node = _node_or_404(assembler, node_id)
    session = assembler.store.get_session(node.session_id)
    document = {
        "session_title": session.title if session is not None else None,
        "node": NodeRead.model_validate(node).model_dump(mode="json"),
        "ancestry": [
            {"node_id": str(ancestor.node_id), "depth": ancestor.depth, "choice": ancestor.choice}
            for ancestor in assembler.store.list_ancestors(node.node_id)
        ],
        "history": jsonable_encoder(assembler.store.history(node.node_id)),
    }
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="life-node-{node.node_id}.json"'},
    )


def _node_or_404(assembler: NodeAssembler, node_id: uuid.UUID) -> NodeRecord:
    node = assembler.store.get_node(node_id)
    if node is None:
        raise EntityNotFoundError("LifeNode", node_id)
    return node
