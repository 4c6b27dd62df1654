"""
WebSocket Routes for Real-time Execution Streaming.

Provides live updates during workflow execution.
"""

from typing import Dict
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from uuid import uuid4
import logging

from nodeflow.api.dependencies import ClientFactoryBuilder, create_engine, get_client_factory_builder
from nodeflow.api.schemas import ExecuteRequest
from nodeflow.engine.executor import ExecutionStream


logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


class ConnectionManager:
    """Tracks open execution sockets and the run each one drives."""

    def __init__(self):
        self.active_runs: Dict[str, ExecutionStream] = {}

    async def connect(self, websocket: WebSocket, run_id: str):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        logger.info(f"WebSocket connected for run: {run_id}")

    def attach(self, run_id: str, stream: ExecutionStream):
        self.active_runs[run_id] = stream

    def disconnect(self, run_id: str):
        """Forget a connection, cancelling its run if it is still going."""
        stream = self.active_runs.pop(run_id, None)
        if stream is not None and not stream.finished:
            stream.cancel()
            logger.info(f"Cancelled run {run_id} after disconnect")
        logger.info(f"WebSocket disconnected for run: {run_id}")

    def __len__(self) -> int:
        return len(self.active_runs)


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/execute")
async def websocket_execute(
    websocket: WebSocket,
    build_clients: ClientFactoryBuilder = Depends(get_client_factory_builder),
):
    """
    WebSocket endpoint for real-time workflow execution.

    Connect, then send the workflow together with a start action.
    You'll receive one StreamEvent per message until ``complete`` or ``error``.
    Disconnecting cancels the run.

    Message format (client -> server):
    ```json
    {"action": "start", "nodes": [...], "edges": [...], "input": "Hello"}
    ```

    Message format (server -> client):
    ```json
    {"kind": "nodeComplete", "payload": {"nodeId": "llm", ...}, "timestamp": "..."}
    ```
    """
    run_id = str(uuid4())
    await manager.connect(websocket, run_id)

    try:
        # Wait for start message
        data = await websocket.receive_json()

        if data.get("action") != "start":
            await websocket.send_json({
                "kind": "error",
                "payload": {"error": "Expected 'start' action"},
            })
            return

        try:
            request = ExecuteRequest.model_validate(
                {k: v for k, v in data.items() if k != "action"}
            )
        except ValidationError as e:
            await websocket.send_json({
                "kind": "error",
                "payload": {"error": "Invalid workflow payload", "detail": str(e)},
            })
            return

        engine = create_engine(
            request.definition(),
            request.config,
            request.options,
            build_clients,
            header_user_id=websocket.headers.get("x-user-id"),
        )
        stream = engine.stream(request.input)
        manager.attach(run_id, stream)

        async with stream:
            async for event in stream:
                await websocket.send_text(event.model_dump_json())

        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"Client disconnected from run {run_id}")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        await _send_error(websocket, str(e))
    finally:
        manager.disconnect(run_id)


async def _send_error(websocket: WebSocket, message: str):
    try:
        await websocket.send_json({"kind": "error", "payload": {"error": message}})
    except (RuntimeError, WebSocketDisconnect):
        logger.debug("Could not report error, socket already closed")
