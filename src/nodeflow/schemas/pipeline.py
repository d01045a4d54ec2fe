"""Pydantic schemas for pipelines, nodes and edges."""

from datetime import datetime
from pydantic import AliasChoices, BaseModel, Field

from nodeflow.models.node import NodeKind


class PipelineCreate(BaseModel):
    name: str
    description: str | None = None
    metadata: dict | None = None


class PipelineUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    metadata: dict | None = None


class PipelineResponse(BaseModel):
    id: str
    name: str
    description: str | None
    status: str
    metadata: dict | None = Field(default=None, validation_alias=AliasChoices("metadata_", "metadata"))
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PipelineListResponse(BaseModel):
    pipelines: list[PipelineResponse]
    total: int


class NodeCreate(BaseModel):
    name: str
    type: NodeKind
    config: dict = {}
    position: dict | None = None
    metadata: dict | None = None


class NodeUpdate(BaseModel):
    name: str | None = None
    config: dict | None = None
    position: dict | None = None
    metadata: dict | None = None


class NodeResponse(BaseModel):
    id: str
    pipeline_id: str
    name: str
    type: str
    config: dict
    position: dict | None
    metadata: dict | None = Field(default=None, validation_alias=AliasChoices("metadata_", "metadata"))
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class EdgeCreate(BaseModel):
    source_node_id: str
    target_node_id: str
    source_handle: str | None = None
    target_handle: str | None = None
    metadata: dict | None = None


class EdgeResponse(BaseModel):
    id: str
    pipeline_id: str
    source_node_id: str
    target_node_id: str
    source_handle: str | None
    target_handle: str | None
    metadata: dict | None = Field(default=None, validation_alias=AliasChoices("metadata_", "metadata"))
    created_at: datetime

    model_config = {"from_attributes": True}


class PipelineGraphResponse(BaseModel):
    pipeline: PipelineResponse
    nodes: list[NodeResponse]
    edges: list[EdgeResponse]
    groups: list[list[str]]  # node ids that may run in parallel, in execution order
