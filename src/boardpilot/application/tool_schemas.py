"""
Tool input schemas.

One pydantic model per registry tool. The models validate raw tool input
coming from the language model and provide the JSON schema advertised in
the tool definitions.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

PROJECT_ID_DESCRIPTION = "Azure DevOps project ID"


class ReadWorkItemInput(BaseModel):
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    work_item_id: int = Field(..., gt=0, description="Work item ID")
    include_children: bool = Field(default=False, description="Include child work items")
    include_parent: bool = Field(default=False, description="Include parent work item")
    include_related: bool = Field(default=False, description="Include related work items")


class SearchWorkItemsInput(BaseModel):
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    query: Optional[str] = Field(default=None, description="Search query for title/description")
    state: Optional[str] = Field(default=None, description="Work item state (e.g., Active, New)")
    work_item_type: Optional[str] = Field(
        default=None, description="Work item type (e.g., Task, User Story, Bug)"
    )
    assigned_to: Optional[str] = Field(default=None, description="Assigned user email or name")
    tags: Optional[list[str]] = Field(default=None, description="Tags to filter by")
    limit: int = Field(default=50, gt=0, le=200, description="Maximum number of results (max 200)")


class CreateWorkItemInput(BaseModel):
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    work_item_type: str = Field(
        ..., description="Work item type (Task, User Story, Bug, Feature, Epic)"
    )
    title: str = Field(..., min_length=1, description="Work item title")
    description: Optional[str] = Field(default=None, description="Work item description")
    assigned_to: Optional[str] = Field(default=None, description="Assigned user email")
    state: Optional[str] = Field(default=None, description="Initial state (default: New)")
    priority: Optional[int] = Field(
        default=None, ge=1, le=4, description="Priority (1=highest, 4=lowest)"
    )
    tags: Optional[list[str]] = Field(default=None, description="Tags for the work item")
    parent_id: Optional[int] = Field(default=None, gt=0, description="Parent work item ID")
    additional_fields: Optional[dict[str, Union[str, int, float]]] = Field(
        default=None, description="Additional custom fields keyed by reference name"
    )


class UpdateWorkItemInput(BaseModel):
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    work_item_id: int = Field(..., gt=0, description="Work item ID to update")
    title: Optional[str] = Field(default=None, description="New title")
    description: Optional[str] = Field(default=None, description="New description")
    assigned_to: Optional[str] = Field(default=None, description="New assigned user")
    state: Optional[str] = Field(default=None, description="New state")
    priority: Optional[int] = Field(default=None, ge=1, le=4, description="New priority")
    tags: Optional[list[str]] = Field(default=None, description="New tags (replaces existing)")
    additional_fields: Optional[dict[str, Union[str, int, float]]] = Field(
        default=None, description="Additional fields to update"
    )


class LinkWorkItemsInput(BaseModel):
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    source_work_item_id: int = Field(..., gt=0, description="Source work item ID")
    target_work_item_id: int = Field(..., gt=0, description="Target work item ID")
    link_type: Literal["parent-child", "child-parent", "related", "predecessor", "successor"] = Field(
        ...,
        description="Link type: parent-child (source is parent), child-parent (source is child), "
        "related, predecessor, successor",
    )


class SpecifyInput(BaseModel):
    session_id: str = Field(..., description="Current session ID")
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    work_item_id: int = Field(..., gt=0, description="Work item to specify")
    answers: Optional[dict[str, str]] = Field(
        default=None,
        description="Answers to clarifying questions keyed by topic: "
        "scenarios, stakeholders, reproduction, acceptance, constraints",
    )


class PlanInput(BaseModel):
    session_id: str = Field(..., description="Current session ID")
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    work_item_id: int = Field(..., gt=0, description="Work item to break down")
    approach: Optional[str] = Field(
        default=None, description="Implementation approach, e.g. 'tdd' or 'spike'"
    )


class ExecuteInput(BaseModel):
    session_id: str = Field(..., description="Current session ID")
    project_id: str = Field(..., description=PROJECT_ID_DESCRIPTION)
    dry_run: bool = Field(default=False, description="Preview without creating work items")
    batch_size: Optional[int] = Field(
        default=None, gt=0, le=200, description="Work items created concurrently per batch"
    )
