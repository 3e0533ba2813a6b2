from collections.abc import Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.graphs.node_assembler import NodeAssembler


def db_session() -> Generator[Session, None, None]:
    yield from get_db()


def node_assembler(request: Request) -> NodeAssembler:
    assembler = getattr(request.app.state, "assembler", None)
    if assembler is None:
        raise HTTPException(status_code=503, detail="node pipeline is not initialized")
    return assembler


DbSessionDep = Depends(db_session)
AssemblerDep = Depends(node_assembler)
