"""
Execution API Routes.

Endpoints for running a workflow definition, either to completion or as a
server-sent-events stream.
"""

from typing import Any, AsyncIterator, Dict, Optional
from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse
import logging

from nodeflow.api.dependencies import ClientFactoryBuilder, create_engine, get_client_factory_builder
from nodeflow.api.schemas import ErrorResponse, ExecuteRequest
from nodeflow.engine.executor import ExecutionStream


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/execute", tags=["Execute"])


@router.post(
    "",
    responses={422: {"model": ErrorResponse, "description": "Malformed workflow payload"}},
)
async def execute_workflow(
    request: ExecuteRequest,
    x_user_id: Optional[str] = Header(None),
    build_clients: ClientFactoryBuilder = Depends(get_client_factory_builder),
) -> Dict[str, Any]:
    """
    Execute a workflow and return its final state.

    Node failures are reported inside the result (``success`` is false and
    ``data.error`` carries the user-facing message); the endpoint itself
    answers 200 whenever the payload is well formed.
    """
    engine = create_engine(
        request.definition(),
        request.config,
        request.options,
        build_clients,
        header_user_id=x_user_id,
    )
    result = await engine.run(request.input)

    logger.info(
        f"Execution finished: success={result.success}, "
        f"nodes={len(result.data.node_results)}"
    )
    return result.to_dict()


@router.post("/stream")
async def execute_workflow_stream(
    request: ExecuteRequest,
    x_user_id: Optional[str] = Header(None),
    build_clients: ClientFactoryBuilder = Depends(get_client_factory_builder),
) -> StreamingResponse:
    """
    Execute a workflow and stream progress as server-sent events.

    Each frame is ``data: <json StreamEvent>`` followed by a blank line.
    The stream ends after a ``complete`` or ``error`` event.
    """
    engine = create_engine(
        request.definition(),
        request.config,
        request.options,
        build_clients,
        header_user_id=x_user_id,
    )

    return StreamingResponse(
        _sse_frames(engine.stream(request.input)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


async def _sse_frames(stream: ExecutionStream) -> AsyncIterator[str]:
    # Closing the response (client gone) closes the stream and cancels the run
    async with stream:
        async for event in stream:
            yield event.to_sse()
