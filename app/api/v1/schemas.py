from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.graphs.schemas import BaseContext, RawChoice, UserPreferences

SessionStatus = Literal["active", "completed", "archived"]


class SessionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    base_context: BaseContext = Field(default_factory=BaseContext)
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)
    tags: list[str] = Field(default_factory=list, max_length=10)
    is_public: bool = False
    initial_choice: RawChoice
    run_in_background: bool = False


class SessionUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    status: SessionStatus | None = None
    tags: list[str] | None = Field(default=None, max_length=10)
    is_public: bool | None = None
    user_preferences: UserPreferences | None = None


class SessionRead(BaseModel):
    session_id: uuid.UUID
    title: str
    description: str | None = None
    base_context: dict = Field(default_factory=dict)
    user_preferences: dict = Field(default_factory=dict)
    root_node_id: uuid.UUID | None = None
    total_nodes: int
    max_depth: int
    status: str
    tags: list[str] = Field(default_factory=list)
    is_public: bool
    view_count: int
    shareable_token: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class NodeRead(BaseModel):
    node_id: uuid.UUID
    session_id: uuid.UUID
    parent_node_id: uuid.UUID | None = None
    depth: int
    order: int = Field(validation_alias="sibling_order")
    choice: dict
    metrics: dict | None = None
    narrative: dict | None = None
    media: dict | None = None
    status: str
    error_message: str | None = None
    processing_time_ms: int | None = None
    child_node_ids: list[str] = Field(default_factory=list)
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class NodeCreate(BaseModel):
    parent_node_id: uuid.UUID | None = None
    choice: RawChoice
    user_preferences: UserPreferences | None = None
    run_in_background: bool = False


class NodeCreated(BaseModel):
    node: NodeRead
    job_id: uuid.UUID | None = None


class SessionCreated(BaseModel):
    session: SessionRead
    root_node: NodeRead
    job_id: uuid.UUID | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SessionList(BaseModel):
    items: list[SessionRead]
    pagination: Pagination


class TreeNode(NodeRead):
    children: list[TreeNode] = Field(default_factory=list)


class SessionTree(BaseModel):
    session: SessionRead
    tree: list[TreeNode]


class PublicSessionRead(BaseModel):
    session: SessionRead
    nodes: list[NodeRead]


class JobStatusRead(BaseModel):
    job_id: uuid.UUID
    job_type: str
    status: str
    node_id: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime
    result: dict | None = None
    error: str | None = None
