from fastapi import APIRouter

from app.api.v1 import jobs, nodes, sessions


api_router = APIRouter(prefix="/v1")

api_router.include_router(sessions.router)
api_router.include_router(nodes.router)
api_router.include_router(jobs.router)
