"""Canvas tools exposed to the orchestrator model.

Tools never touch canvas state themselves. Each returns ``{"changes": [...],
"message": ...}`` and the client applies the changes when it reconciles the
stream.
"""

import json
from dataclasses import dataclass
from typing import List, Dict, Any, Callable, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from .changes import ChangeDescriptor


class SectionTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_id: str = Field(
        alias="sectionId",
        description="The ID of the canvas section (e.g., 'problem', 'solution', 'customer-segments')",
    )
    subsection_title: Optional[str] = Field(
        default=None,
        alias="subsectionTitle",
        description="Optional: The title of the subsection to target",
    )


class UpdateItemInput(SectionTarget):
    index: int = Field(description="The index of the item to update")
    value: str = Field(description="The new value for the item")


class AddItemInput(SectionTarget):
    value: str = Field(default="", description="The text of the new item")


class RemoveItemInput(SectionTarget):
    index: int = Field(description="The index of the item to remove")


class ReplaceStateInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_state: Dict[str, Any] = Field(alias="newState", description="The complete new canvas state object")


class AnalyzeInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis_type: Literal["completeness", "coherence", "suggestions", "summary"] = Field(
        alias="analysisType",
        description="The type of analysis to perform",
    )


class BatchOperation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["update", "add", "remove", "replace"]
    section_id: str = Field(default="", alias="sectionId")
    index: Optional[int] = None
    value: Optional[str] = None
    subsection_title: Optional[str] = Field(default=None, alias="subsectionTitle")
    new_state: Optional[Dict[str, Any]] = Field(default=None, alias="newState")


class BatchUpdateInput(BaseModel):
    operations: List[BatchOperation] = Field(description="Array of operations to perform")


def _target_phrase(section_id: str, subsection_title: Optional[str]) -> str:
    if subsection_title:
        return f"section {section_id} subsection {subsection_title}"
    return f"section {section_id}"


def _result(changes: List[ChangeDescriptor], message: str) -> Dict[str, Any]:
    return {"changes": [change.to_payload() for change in changes], "message": message}


def update_item(args: UpdateItemInput) -> Dict[str, Any]:
    change = ChangeDescriptor(
        type="update",
        section_id=args.section_id,
        index=args.index,
        value=args.value,
        subsection_title=args.subsection_title,
    )
    return _result(
        [change],
        f'Updated item at index {args.index} in {_target_phrase(args.section_id, args.subsection_title)} to: "{args.value}"',
    )


def add_item(args: AddItemInput) -> Dict[str, Any]:
    change = ChangeDescriptor(
        type="add",
        section_id=args.section_id,
        value=args.value,
        subsection_title=args.subsection_title,
    )
    return _result([change], f"Added new item to {_target_phrase(args.section_id, args.subsection_title)}")


def remove_item(args: RemoveItemInput) -> Dict[str, Any]:
    change = ChangeDescriptor(
        type="remove",
        section_id=args.section_id,
        index=args.index,
        subsection_title=args.subsection_title,
    )
    return _result(
        [change],
        f"Removed item at index {args.index} from {_target_phrase(args.section_id, args.subsection_title)}",
    )


def replace_state(args: ReplaceStateInput) -> Dict[str, Any]:
    change = ChangeDescriptor(type="replace", new_state=args.new_state)
    return _result([change], "Replaced entire canvas state with new content")


def analyze(args: AnalyzeInput) -> Dict[str, Any]:
    # Analysis is done by the model from the canvas in its context; nothing changes.
    return {
        "analysisType": args.analysis_type,
        "message": f"Canvas analysis of type '{args.analysis_type}' completed",
    }


def _describe_change(change: ChangeDescriptor) -> str:
    if change.subsection_title:
        target = f"subsection '{change.subsection_title}' for section '{change.section_id}'"
    else:
        target = f"section '{change.section_id}'"
    if change.type == "add":
        return f"Added '{change.value}' to {target}"
    if change.type == "update":
        return f"Updated item at index {change.index} in {target} to '{change.value}'"
    if change.type == "remove":
        return f"Removed item at index {change.index} from {target}"
    return "Replaced entire canvas state"


def batch_update(args: BatchUpdateInput) -> Dict[str, Any]:
    changes = [
        ChangeDescriptor.model_validate(op.model_dump(by_alias=True, exclude_none=True))
        for op in args.operations
    ]
    summary = "; ".join(_describe_change(change) for change in changes)
    return _result(changes, summary or f"Performed {len(changes)} canvas operations")


@dataclass
class CanvasTool:
    name: str
    description: str
    input_model: Type[BaseModel]
    execute: Callable[[Any], Dict[str, Any]]

    def schema(self) -> Dict[str, Any]:
        """OpenAI-style function definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_model.model_json_schema(by_alias=True),
            },
        }

    def run(self, arguments: Any) -> Dict[str, Any]:
        """
        Validate raw model arguments and execute the tool.

        Raises:
            ValueError: if the arguments are not valid JSON
            pydantic.ValidationError: if they do not match the input model
        """
        if isinstance(arguments, str):
            arguments = json.loads(arguments) if arguments.strip() else {}
        args = self.input_model.model_validate(arguments or {})
        return self.execute(args)


CANVAS_TOOLS = [
    CanvasTool(
        "canvas_update_item",
        "Update a specific item in a canvas section or subsection",
        UpdateItemInput,
        update_item,
    ),
    CanvasTool(
        "canvas_add_item",
        "Add a new item to a canvas section or subsection",
        AddItemInput,
        add_item,
    ),
    CanvasTool(
        "canvas_remove_item",
        "Remove an item from a canvas section or subsection",
        RemoveItemInput,
        remove_item,
    ),
    CanvasTool(
        "canvas_replace_state",
        "Replace the entire canvas state with new content",
        ReplaceStateInput,
        replace_state,
    ),
    CanvasTool(
        "canvas_analyze",
        "Analyze the current canvas state and provide insights",
        AnalyzeInput,
        analyze,
    ),
    CanvasTool(
        "canvas_batch_update",
        "Perform multiple canvas operations in a single call",
        BatchUpdateInput,
        batch_update,
    ),
]
