"""
Tools Module
----------
Function-calling tools offered to the chat model and their dispatch.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from slide_tutor.slide_context import SlideContext

logger = logging.getLogger(__name__)

CREATE_CANVAS = "create_canvas"
SWITCH_SLIDE = "switch_slide"

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": CREATE_CANVAS,
            "description": "Create a canvas that shows Markdown content or a Mermaid diagram",
            "parameters": {
                "type": "object",
                "properties": {
                    "content": {
                        "type": "string",
                        "description": (
                            "Content to show on the canvas. Either Markdown text or a Mermaid "
                            "diagram; wrap Mermaid diagrams in ```mermaid ... ``` fences."
                        ),
                    }
                },
                "required": ["content"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": SWITCH_SLIDE,
            "description": "Switch to the given slide page",
            "parameters": {
                "type": "object",
                "properties": {
                    "pageNumber": {
                        "type": "integer",
                        "description": "Page number of the slide to switch to",
                    }
                },
                "required": ["pageNumber"],
            },
        },
    },
]


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Any = field(default_factory=dict)

    def to_api(self) -> Dict[str, Any]:
        """Serialize in the chat-completions wire format."""
        arguments = self.arguments
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments, ensure_ascii=False)
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": arguments},
        }


@dataclass
class ToolResult:
    tool_call_id: str
    content: str


def parse_arguments(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize tool arguments to a dict.

    Parameters
    ----------
    raw : Any
        A JSON string (as sent over the wire) or an already decoded value.

    Returns
    -------
    Optional[Dict[str, Any]]
        The arguments, or None if they are not a JSON object.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            return None
    if isinstance(raw, dict):
        return raw
    return None


class ToolExecutor:
    """Runs tool calls against the handlers provided by the chat session."""

    def __init__(
        self,
        on_canvas: Callable[[str], None],
        on_switch_slide: Callable[[int], Optional[SlideContext]]
    ):
        """
        Initialize the executor.

        Parameters
        ----------
        on_canvas : Callable[[str], None]
            Called with the canvas content.
        on_switch_slide : Callable[[int], Optional[SlideContext]]
            Called with the target page; returns the new context or None on failure.
        """
        self.on_canvas = on_canvas
        self.on_switch_slide = on_switch_slide

    def execute(self, call: ToolCall) -> ToolResult:
        """Execute one tool call and describe the outcome for the model."""
        logger.info(f"Executing tool call {call.id}: {call.name}")
        args = parse_arguments(call.arguments)

        if args is None:
            content = f"Error: Invalid arguments received for tool {call.name}"
        elif call.name == CREATE_CANVAS:
            content = self._create_canvas(args)
        elif call.name == SWITCH_SLIDE:
            content = self._switch_slide(args)
        else:
            content = f"Tool {call.name} not implemented."

        if content.startswith("Error"):
            logger.warning(f"Tool call {call.id} failed: {content}")
        return ToolResult(tool_call_id=call.id, content=content)

    def _create_canvas(self, args: Dict[str, Any]) -> str:
        content = args.get("content")
        if not isinstance(content, str):
            return "Error: Missing or invalid 'content' argument for create_canvas."
        self.on_canvas(content)
        return "Canvas created successfully."

    def _switch_slide(self, args: Dict[str, Any]) -> str:
        page = args.get("pageNumber")
        # JSON numbers like 3.0 are accepted; bools are not pages
        if isinstance(page, float) and page.is_integer():
            page = int(page)
        if not isinstance(page, int) or isinstance(page, bool):
            return "Error: Missing or invalid 'pageNumber' argument for switch_slide."

        try:
            context = self.on_switch_slide(page)
        except Exception as e:
            logger.error(f"Error executing slide switch: {e}", exc_info=True)
            return f"Error switching slide: {e}"

        if context is None:
            return (
                f"Error: Failed to switch to slide {page}. "
                "Could not load context or invalid page."
            )
        return f"Successfully switched to slide {page}. New context: {context.title}"
