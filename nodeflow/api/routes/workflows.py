"""
Workflow API Routes.

Validation of workflow definitions and the catalogue of predefined workflows.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
import logging

from nodeflow.api.dependencies import ClientFactoryBuilder, create_engine, get_client_factory_builder
from nodeflow.api.schemas import (
    ErrorResponse,
    TemplateExecuteRequest,
    TemplateInfo,
    TemplateListResponse,
    ValidateRequest,
    ValidateResponse,
)
from nodeflow.engine.definition import WorkflowDefinition
from nodeflow.engine.errors import WorkflowValidationError, classify_error, create_error_report
from nodeflow.engine.executor import plan_execution
from nodeflow.engine.graph import build_graph
from nodeflow.workflows.templates import get_template, list_templates


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


@router.post("/validate", response_model=ValidateResponse, response_model_by_alias=True)
async def validate_workflow(request: ValidateRequest) -> ValidateResponse:
    """
    Check that a workflow can run without running it.

    Returns the entry and exit points, the execution waves, nodes that will be
    skipped as unreachable, and a Mermaid diagram. An invalid workflow is
    reported with ``valid: false`` and an error report.
    """
    definition = WorkflowDefinition(nodes=request.nodes, edges=request.edges)

    try:
        graph = build_graph(definition)
        plan = plan_execution(graph)
    except WorkflowValidationError as e:
        error = classify_error(e)
        return ValidateResponse(
            valid=False,
            error=create_error_report(error, {
                "nodeCount": len(definition.nodes),
                "edgeCount": len(definition.edges),
                "reason": str(e),
            }),
        )

    return ValidateResponse(
        valid=True,
        entry_points=graph.entry_points,
        exit_points=graph.exit_points,
        waves=plan.waves,
        skipped=plan.skipped,
        mermaid_diagram=graph.to_mermaid(),
    )


@router.get("/templates", response_model=TemplateListResponse, response_model_by_alias=True)
async def get_templates() -> TemplateListResponse:
    """List the predefined workflows."""
    templates = [TemplateInfo(**t.to_dict()) for t in list_templates()]
    return TemplateListResponse(templates=templates, total=len(templates))


@router.post(
    "/templates/{name}/execute",
    responses={404: {"model": ErrorResponse, "description": "Template not found"}},
)
async def execute_template(
    name: str,
    request: TemplateExecuteRequest,
    x_user_id: Optional[str] = Header(None),
    build_clients: ClientFactoryBuilder = Depends(get_client_factory_builder),
) -> Dict[str, Any]:
    """Run a predefined workflow against the given input."""
    workflow = get_template(name)
    if workflow is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template '{name}' not found",
        )

    engine = create_engine(
        workflow.build(),
        request.config,
        request.options,
        build_clients,
        header_user_id=x_user_id,
    )
    result = await engine.run(request.input)
    logger.info(f"Template '{name}' finished: success={result.success}")
    return result.to_dict()
