"""
Workflows package - Predefined workflow templates.
"""

from nodeflow.workflows.templates import (
    WorkflowTemplate,
    create_chat_workflow,
    create_tool_workflow,
    get_template,
    list_templates,
    template,
)

__all__ = [
    "WorkflowTemplate",
    "create_chat_workflow",
    "create_tool_workflow",
    "get_template",
    "list_templates",
    "template",
]
