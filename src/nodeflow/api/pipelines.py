"""Pipeline API endpoints — pipelines, their nodes and edges, and starting runs."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.core.auth import verify_api_key
from nodeflow.core.database import get_session
from nodeflow.engine.errors import NotFoundError
from nodeflow.engine.runtime import get_engine
from nodeflow.schemas.pipeline import (
    EdgeCreate,
    EdgeResponse,
    NodeCreate,
    NodeResponse,
    NodeUpdate,
    PipelineCreate,
    PipelineGraphResponse,
    PipelineListResponse,
    PipelineResponse,
    PipelineUpdate,
)
from nodeflow.schemas.run import RunCreate, RunCreated, RunListResponse
from nodeflow.services.pipeline_service import PipelineService
from nodeflow.services.run_service import RunService

router = APIRouter(prefix="/pipelines", tags=["pipelines"])


@router.get("", response_model=PipelineListResponse)
async def list_pipelines(
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """List all pipelines."""
    pipelines = await PipelineService(session).list_all()
    return PipelineListResponse(pipelines=pipelines, total=len(pipelines))


@router.post("", response_model=PipelineResponse)
async def create_pipeline(
    data: PipelineCreate,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """Create a draft pipeline."""
    return await PipelineService(session).create(data.name, data.description, data.metadata)


@router.get("/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    return await PipelineService(session).get(pipeline_id)


@router.patch("/{pipeline_id}", response_model=PipelineResponse)
async def update_pipeline(
    pipeline_id: str,
    data: PipelineUpdate,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    return await PipelineService(session).update(
        pipeline_id, name=data.name, description=data.description, metadata=data.metadata
    )


@router.delete("/{pipeline_id}")
async def delete_pipeline(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """Delete a pipeline. Pipelines with runs are archived instead."""
    outcome = await PipelineService(session).delete(pipeline_id)
    return {"status": outcome, "id": pipeline_id}


@router.post("/{pipeline_id}/publish", response_model=PipelineResponse)
async def publish_pipeline(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    return await PipelineService(session).publish(pipeline_id)


@router.post("/{pipeline_id}/archive", response_model=PipelineResponse)
async def archive_pipeline(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    return await PipelineService(session).archive(pipeline_id)


@router.get("/{pipeline_id}/graph", response_model=PipelineGraphResponse)
async def get_graph(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """Nodes, edges and the groups of nodes that can run in parallel."""
    pipeline, nodes, edges, groups = await PipelineService(session).graph(pipeline_id)
    return PipelineGraphResponse(
        pipeline=PipelineResponse.model_validate(pipeline),
        nodes=nodes,
        edges=edges,
        groups=groups,
    )


# ─── Nodes ───

@router.get("/{pipeline_id}/nodes", response_model=list[NodeResponse])
async def list_nodes(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    return await PipelineService(session).list_nodes(pipeline_id)


@router.post("/{pipeline_id}/nodes", response_model=NodeResponse)
async def add_node(
    pipeline_id: str,
    data: NodeCreate,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """Add a node. Its config is checked against the node type."""
    return await PipelineService(session).add_node(
        pipeline_id,
        name=data.name,
        type=data.type.value,
        config=data.config,
        position=data.position,
        metadata=data.metadata,
    )


@router.patch("/{pipeline_id}/nodes/{node_id}", response_model=NodeResponse)
async def update_node(
    pipeline_id: str,
    node_id: str,
    data: NodeUpdate,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    service = PipelineService(session)
    await _node_in_pipeline(service, pipeline_id, node_id)
    return await service.update_node(
        node_id,
        name=data.name,
        config=data.config,
        position=data.position,
        metadata=data.metadata,
    )


@router.delete("/{pipeline_id}/nodes/{node_id}")
async def remove_node(
    pipeline_id: str,
    node_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    service = PipelineService(session)
    await _node_in_pipeline(service, pipeline_id, node_id)
    await service.remove_node(node_id)
    return {"status": "deleted", "id": node_id}


async def _node_in_pipeline(service: PipelineService, pipeline_id: str, node_id: str):
    node = await service.get_node(node_id)
    if node.pipeline_id != pipeline_id:
        raise NotFoundError("Node", node_id)
    return node


# ─── Edges ───

@router.get("/{pipeline_id}/edges", response_model=list[EdgeResponse])
async def list_edges(
    pipeline_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    return await PipelineService(session).list_edges(pipeline_id)


@router.post("/{pipeline_id}/edges", response_model=EdgeResponse)
async def add_edge(
    pipeline_id: str,
    data: EdgeCreate,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """Connect two nodes. Edges that would close a cycle are rejected."""
    return await PipelineService(session).add_edge(
        pipeline_id,
        data.source_node_id,
        data.target_node_id,
        source_handle=data.source_handle,
        target_handle=data.target_handle,
        metadata=data.metadata,
    )


@router.delete("/{pipeline_id}/edges/{edge_id}")
async def remove_edge(
    pipeline_id: str,
    edge_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    await PipelineService(session).remove_edge(edge_id)
    return {"status": "deleted", "id": edge_id}


# ─── Runs ───

@router.post("/{pipeline_id}/runs", response_model=RunCreated)
async def create_run(
    pipeline_id: str,
    data: RunCreate,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """Start a run of the pipeline with the given input data."""
    run = await RunService(session, engine=get_engine()).create_run(pipeline_id, data.input_data)
    return RunCreated(run_id=run.id, status=run.status)


@router.get("/{pipeline_id}/runs", response_model=RunListResponse)
async def list_runs(
    pipeline_id: str,
    limit: int = 20,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    runs = await RunService(session).list_runs(pipeline_id, limit=limit)
    return RunListResponse(runs=runs, total=len(runs))
