import math
import uuid

from fastapi import APIRouter, Query, Response
from sqlalchemy import or_, select

from app.api.deps import AssemblerDep, DbSessionDep
from app.api.v1.nodes import enqueue_generation
from app.api.v1.schemas import (
    NodeRead,
    Pagination,
    PublicSessionRead,
    SessionCreate,
    SessionCreated,
    SessionList,
    SessionRead,
    SessionStatus,
    SessionTree,
    SessionUpdate,
    TreeNode,
)
from app.core.exceptions import AppError, EntityNotFoundError
from app.db.models import LifeNode, LifeSession
from app.graphs.node_assembler import NodeCreateRequest
from app.services.audit import log_audit_entry


router = APIRouter(tags=["sessions"])


@router.post("/sessions", response_model=SessionCreated, status_code=201)
def create_session(payload: SessionCreate, response: Response, db=DbSessionDep, assembler=AssemblerDep):
    session = LifeSession(
        session_id=uuid.uuid4(),
        title=payload.title.strip(),
        description=payload.description.strip() if payload.description else None,
        base_context=payload.base_context.model_dump(mode="json", exclude_none=True),
        user_preferences=payload.user_preferences.model_dump(mode="json", exclude_none=True),
        tags=list(payload.tags),
        is_public=payload.is_public,
        shareable_token=uuid.uuid4().hex,
    )
    db.add(session)
    log_audit_entry(db, "life_session", session.session_id, "create", new_value={"title": session.title})
    db.commit()
    db.refresh(session)

    request = NodeCreateRequest(
        session_id=session.session_id,
        choice=payload.initial_choice,
        preferences=payload.user_preferences,
    )
    try:
        root = assembler.prepare(request)
    except AppError:
        # a session without a root node is unusable
        assembler.store.delete_session(session.session_id)
        raise

    job_id = None
    if payload.run_in_background:
        job_id = enqueue_generation(assembler, root, payload.user_preferences).job_id
        response.status_code = 202
    else:
        root = assembler.generate(root.node_id, preferences=payload.user_preferences)

    db.refresh(session)
    return SessionCreated(
        session=SessionRead.model_validate(session),
        root_node=NodeRead.model_validate(root),
        job_id=job_id,
    )


@router.get("/sessions", response_model=SessionList)
def list_sessions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    status: SessionStatus | None = None,
    tags: str | None = None,
    search: str | None = Query(default=None, max_length=200),
    db=DbSessionDep,
):
    filters = []
    if status:
        filters.append(LifeSession.status == status)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(LifeSession.title.ilike(pattern), LifeSession.description.ilike(pattern)))

    stmt = select(LifeSession).where(*filters).order_by(LifeSession.created_at.desc())
    sessions = list(db.execute(stmt).scalars().all())
    if tags:
        wanted = {tag.strip() for tag in tags.split(",") if tag.strip()}
        sessions = [session for session in sessions if wanted.intersection(session.tags or [])]

    total = len(sessions)
    total_pages = math.ceil(total / limit) if total else 0
    start = (page - 1) * limit
    return SessionList(
        items=[SessionRead.model_validate(session) for session in sessions[start : start + limit]],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


@router.get("/sessions/{session_id}", response_model=SessionRead)
def get_session(session_id: uuid.UUID, db=DbSessionDep):
    return get_session_or_404(db, session_id)


@router.get("/sessions/{session_id}/tree", response_model=SessionTree)
def get_session_tree(session_id: uuid.UUID, db=DbSessionDep):
    session = get_session_or_404(db, session_id)
    nodes = _session_nodes(db, session_id)
    return SessionTree(session=SessionRead.model_validate(session), tree=build_tree(nodes))


@router.patch("/sessions/{session_id}", response_model=SessionRead)
def update_session(session_id: uuid.UUID, payload: SessionUpdate, db=DbSessionDep):
    session = get_session_or_404(db, session_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    old_value = {name: getattr(session, name) for name in changes}
    for name, value in changes.items():
        setattr(session, name, value)
    log_audit_entry(db, "life_session", session_id, "update", old_value=old_value, new_value=changes)
    db.commit()
    db.refresh(session)
    return session


@router.delete("/sessions/{session_id}", status_code=204)
def delete_session(session_id: uuid.UUID, assembler=AssemblerDep):
    if not assembler.store.delete_session(session_id):
        raise EntityNotFoundError("LifeSession", session_id)
    return Response(status_code=204)


@router.get("/public/sessions/{token}", response_model=PublicSessionRead)
def get_public_session(token: str, db=DbSessionDep):
    session = db.execute(
        select(LifeSession).where(LifeSession.shareable_token == token, LifeSession.is_public.is_(True))
    ).scalar_one_or_none()
    if session is None:
        raise EntityNotFoundError("PublicSession", token)
    session.view_count = LifeSession.view_count + 1
    db.commit()
    db.refresh(session)
    return PublicSessionRead(
        session=SessionRead.model_validate(session),
        nodes=[NodeRead.model_validate(node) for node in _session_nodes(db, session.session_id)],
    )


def get_session_or_404(db, session_id: uuid.UUID) -> LifeSession:
    session = db.get(LifeSession, session_id)
    if session is None:
        raise EntityNotFoundError("LifeSession", session_id)
    return session


def _session_nodes(db, session_id: uuid.UUID) -> list[LifeNode]:
    stmt = (
        select(LifeNode)
        .where(LifeNode.session_id == session_id)
        .order_by(LifeNode.depth, LifeNode.sibling_order, LifeNode.created_at)
    )
    return list(db.execute(stmt).scalars().all())


def build_tree(nodes: list[LifeNode]) -> list[TreeNode]:
    """Nest nodes under their parents; nodes arrive ordered by depth then sibling order."""
    by_id: dict[uuid.UUID, TreeNode] = {}
    roots: list[TreeNode] = []
    for node in nodes:
        item = TreeNode.model_validate(node)
        by_id[node.node_id] = item
        parent = by_id.get(node.parent_node_id) if node.parent_node_id is not None else None
        if parent is None:
            roots.append(item)
        else:
            parent.children.append(item)
    return roots
