"""Pydantic schemas for pipeline runs."""

from datetime import datetime
from pydantic import BaseModel


class RunCreate(BaseModel):
    input_data: dict = {}


class RunCreated(BaseModel):
    run_id: str
    status: str


class NodeResultResponse(BaseModel):
    id: str
    node_id: str
    status: str
    started_at: datetime | None
    completed_at: datetime | None
    duration_ms: int | None
    retry_count: int
    input_data: dict | None
    output_data: dict | None
    error_message: str | None

    model_config = {"from_attributes": True}


class RunResponse(BaseModel):
    id: str
    pipeline_id: str
    status: str
    started_at: datetime | None
    completed_at: datetime | None
    duration_ms: int | None
    input_data: dict
    output_data: dict | None
    error_message: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class RunStatusResponse(RunResponse):
    progress_percent: int
    nodes: list[NodeResultResponse]


class RunListResponse(BaseModel):
    runs: list[RunResponse]
    total: int
