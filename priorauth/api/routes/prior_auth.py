"""Prior authorization request API routes."""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from priorauth.api.dependencies import get_processor, get_store
from priorauth.api.requests import UpdatePriorAuthRequest
from priorauth.api.responses import (
    ProcessingStartedResponse,
    RequestDetailResponse,
    RequestListResponse,
)
from priorauth.api.routes.websocket import manager
from priorauth.pipeline.exceptions import PipelineError
from priorauth.pipeline.processor import PipelineProcessor
from priorauth.storage.sql_store import SqlPriorAuthStore
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/requests", tags=["Prior Authorization"])


async def run_pipeline(processor: PipelineProcessor, request_id: str) -> None:
    """Background pipeline run. Failures are already persisted and pushed by the processor."""
    try:
        await processor.process(request_id, on_update=manager.update_sink(request_id))
    except PipelineError as e:
        logger.warning("Pipeline run rejected", request_id=request_id, error=str(e))
    except Exception as e:
        logger.error("Background pipeline run failed", request_id=request_id, error=str(e))


@router.get("", response_model=RequestListResponse)
async def list_requests(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    store: SqlPriorAuthStore = Depends(get_store),
):
    """
    List prior authorization requests, newest first.

    Args:
        limit: Maximum results
        offset: Pagination offset
        store: Injected request store

    Returns:
        List of requests
    """
    requests = await store.list_requests(limit=limit, offset=offset)
    return RequestListResponse(requests=requests, total=len(requests))


@router.get("/{request_id}", response_model=RequestDetailResponse)
async def get_request(request_id: str, store: SqlPriorAuthStore = Depends(get_store)):
    """Get a request with its workflow steps and trace logs."""
    record = await store.get_request_record(request_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Request not found: {request_id}")

    return RequestDetailResponse(
        request=record,
        workflow_steps=await store.list_steps(request_id),
        trace_logs=await store.list_traces(request_id),
    )


@router.patch("/{request_id}")
async def update_request(
    request_id: str,
    body: UpdatePriorAuthRequest,
    store: SqlPriorAuthStore = Depends(get_store),
    processor: PipelineProcessor = Depends(get_processor),
):
    """Manually update status, priority or assignee of a request that is not being processed."""
    if await store.get_request(request_id) is None:
        raise HTTPException(status_code=404, detail=f"Request not found: {request_id}")
    if processor.is_processing(request_id):
        raise HTTPException(status_code=409, detail="Request is already being processed")

    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")

    await store.update_request(request_id, **fields)
    logger.info("Request updated", request_id=request_id, fields=sorted(fields))
    return await store.get_request_record(request_id)


@router.post("/{request_id}/process", status_code=202, response_model=ProcessingStartedResponse)
async def process_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    store: SqlPriorAuthStore = Depends(get_store),
    processor: PipelineProcessor = Depends(get_processor),
):
    """
    Start a pipeline run for a request.

    Progress is pushed to ``/ws/requests/{request_id}`` and persisted as
    workflow steps and trace logs.
    """
    if processor.is_processing(request_id):
        raise HTTPException(status_code=409, detail="Request is already being processed")
    if await store.get_request(request_id) is None:
        raise HTTPException(status_code=404, detail=f"Request not found: {request_id}")

    background_tasks.add_task(run_pipeline, processor, request_id)
    logger.info("Processing scheduled", request_id=request_id)
    return ProcessingStartedResponse(request_id=request_id)
