"""
Request-scoped wiring between the HTTP layer and the engine.

Server settings are turned into per-run RunConfig / RunOptions objects and a
ClientFactory here; the engine itself never reads settings.
"""

from typing import Callable, Dict, Optional
import logging

from nodeflow.api.schemas import ExecutionConfig, ExecutionOptionsRequest
from nodeflow.clients.factory import ClientFactory, HttpClientFactory
from nodeflow.config import settings
from nodeflow.engine.context import RunConfig, RunOptions
from nodeflow.engine.definition import WorkflowDefinition
from nodeflow.engine.executor import WorkflowEngine
from nodeflow.engine.retry import RetryPolicy


logger = logging.getLogger(__name__)


ClientFactoryBuilder = Callable[[Dict[str, str]], ClientFactory]


def _build_http_clients(api_keys: Dict[str, str]) -> ClientFactory:
    return HttpClientFactory(
        {**settings.api_keys(), **api_keys},
        tool_base_url=settings.TOOL_API_BASE_URL,
    )


def get_client_factory_builder() -> ClientFactoryBuilder:
    """FastAPI dependency; tests override it to inject stub clients."""
    return _build_http_clients


def build_run_config(config: ExecutionConfig, header_user_id: Optional[str] = None) -> RunConfig:
    """Request credentials plus the user id, falling back to the X-User-Id header."""
    return RunConfig(
        api_keys={key: value for key, value in config.api_keys.items() if value},
        user_id=config.user_id or header_user_id or None,
    )


def build_run_options(options: Optional[ExecutionOptionsRequest] = None) -> RunOptions:
    options = options or ExecutionOptionsRequest()
    return RunOptions(
        halt_on_node_error=(
            settings.HALT_ON_NODE_ERROR if options.halt_on_node_error is None
            else options.halt_on_node_error
        ),
        stream_node_logs=(
            settings.STREAM_NODE_LOGS if options.stream_node_logs is None
            else options.stream_node_logs
        ),
        llm_retry=RetryPolicy(
            max_retries=settings.LLM_MAX_RETRIES,
            base_delay_ms=settings.LLM_RETRY_BASE_DELAY_MS,
            max_delay_ms=settings.LLM_RETRY_MAX_DELAY_MS,
        ),
        llm_timeout=settings.LLM_TIMEOUT,
        tool_timeout=settings.TOOL_TIMEOUT,
    )


def create_engine(
    definition: WorkflowDefinition,
    config: ExecutionConfig,
    options: Optional[ExecutionOptionsRequest],
    build_clients: ClientFactoryBuilder,
    header_user_id: Optional[str] = None,
) -> WorkflowEngine:
    run_config = build_run_config(config, header_user_id)
    logger.debug(
        f"Creating engine: {len(definition.nodes)} nodes, {len(definition.edges)} edges, "
        f"user={'set' if run_config.user_id else 'none'}"
    )
    return WorkflowEngine(
        definition,
        config=run_config,
        clients=build_clients(run_config.api_keys),
        options=build_run_options(options),
    )
