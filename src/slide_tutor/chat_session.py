"""
Chat Session Module
-----------------
Holds the tutor's in-memory state (deck position, slide context, chat, canvas)
and runs the tool-call loop between the chat model and the tools.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from slide_tutor.canvas import CanvasState
from slide_tutor.config import Settings
from slide_tutor.llm_interface import LLMInterface
from slide_tutor.prompts import CONTINUE_PROMPT, INTRO_PROMPT, build_system_prompt
from slide_tutor.slide_context import DEFAULT_DECK, ContextStore, SlideContext
from slide_tutor.tools import TOOL_DEFINITIONS, ToolCall, ToolExecutor, ToolResult

logger = logging.getLogger(__name__)

# Characters of a tool result shown while it is collapsed
TOOL_PREVIEW_LENGTH = 50


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ChatMessage:
    """A chat message; ``tool`` messages carry the id of the call they answer."""

    role: str
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    id: str = field(default_factory=_new_id)

    def to_api(self) -> Dict[str, Any]:
        """Serialize in the chat-completions wire format."""
        message: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_api() for call in self.tool_calls]
            if not self.content:
                message["content"] = None
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message

    def preview(self, limit: int = TOOL_PREVIEW_LENGTH) -> str:
        """First ``limit`` characters of the content, with an ellipsis when cut."""
        if len(self.content) <= limit:
            return self.content
        return self.content[:limit] + "..."


class ChatSession:
    """Tutor state for one user and the orchestration of model calls."""

    def __init__(
        self,
        llm: LLMInterface,
        store: ContextStore,
        settings: Optional[Settings] = None,
        pdf_url: str = DEFAULT_DECK,
        include_history: bool = True
    ):
        """
        Initialize the chat session.

        Parameters
        ----------
        llm : LLMInterface
            Client used for chat completions.
        store : ContextStore
            Source of per-page slide context.
        settings : Optional[Settings]
            Runtime settings; the tool-call cap is read from here.
        pdf_url : str
            Deck shown initially.
        include_history : bool
            Send the whole conversation to the model, or only the latest turn.
        """
        self.llm = llm
        self.store = store
        self.settings = settings or llm.settings
        self.include_history = include_history

        self.pdf_url = pdf_url
        self.current_page = 1
        self.total_pages = 0
        self.slide_context: Optional[SlideContext] = None

        self.messages: List[ChatMessage] = []
        self.canvas = CanvasState()
        self.intro_generated: Set[int] = set()
        self.llm_initiated_page_change = False
        self.tool_call_count = 0
        self.is_loading = False
        self.error: Optional[str] = None

        self.executor = ToolExecutor(
            on_canvas=self.canvas.show,
            on_switch_slide=self.switch_slide
        )

    @property
    def max_tool_calls(self) -> int:
        return self.settings.max_tool_calls

    # Deck navigation

    def load_document(self, pdf_url: str, total_pages: int) -> None:
        """Show a new deck from its first page, resetting chat and canvas."""
        self.pdf_url = pdf_url
        self.total_pages = total_pages
        self.current_page = 1
        self.clear_messages()
        self.clear_canvas()
        self.llm_initiated_page_change = False
        logger.info(f"Loaded document {pdf_url} with {total_pages} pages")
        self.load_context()

    def load_context(self) -> Optional[SlideContext]:
        """Look up the context of the current page; None if unavailable."""
        if not self.pdf_url or self.total_pages == 0:
            return None
        try:
            context = self.store.lookup(self.pdf_url, self.current_page)
        except (ValueError, LookupError) as e:
            logger.error(f"Failed to load slide context: {e}")
            self.slide_context = None
            return None

        self.slide_context = context.with_page_info(self.current_page, self.total_pages)
        logger.info(
            f"Loaded context for page {self.current_page}/{self.total_pages}: "
            f"{self.slide_context.title}"
        )
        return self.slide_context

    def _valid_page(self, page: int) -> bool:
        return 1 <= page <= self.total_pages

    def change_page(self, page: int) -> bool:
        """
        Move to a page on the user's request.

        Returns
        -------
        bool
            False if the page is outside the deck.
        """
        if not self._valid_page(page):
            logger.warning(f"Ignoring page change to {page}, total pages: {self.total_pages}")
            return False
        self.llm_initiated_page_change = False
        self.current_page = page
        self.load_context()
        return True

    def switch_slide(self, page: int) -> Optional[SlideContext]:
        """
        Move to a page on the model's request (``switch_slide`` tool).

        The page is marked as introduced so that no automatic explanation is
        sent for it.

        Parameters
        ----------
        page : int
            1-based target page.

        Returns
        -------
        Optional[SlideContext]
            The context of the new page, or None if the page is invalid or has no context.
        """
        if not self._valid_page(page):
            logger.warning(
                f"Attempted to switch to invalid page number: {page}, "
                f"total pages: {self.total_pages}"
            )
            return None

        logger.info(f"Switching to slide {page}")
        self.llm_initiated_page_change = True
        self.intro_generated.add(page)
        self.current_page = page
        return self.load_context()

    # Chat

    def _messages_to_send(self) -> List[Dict[str, Any]]:
        messages = self.messages
        if not self.include_history:
            last_user = max(
                (i for i, m in enumerate(messages) if m.role == "user"),
                default=0
            )
            messages = messages[last_user:]
        return [m.to_api() for m in messages]

    def history_for_api(self) -> List[Dict[str, Any]]:
        return [m.to_api() for m in self.messages]

    def visible_messages(self) -> List[ChatMessage]:
        """User and assistant messages with text and tool results, in order."""
        return [
            m for m in self.messages
            if m.role == "tool" or (m.role in ("user", "assistant") and m.content)
        ]

    async def send_message(self, content: str) -> None:
        """
        Send a user message and run the model until it stops calling tools.

        Blank messages are ignored. Errors are stored in ``self.error``.
        """
        if not content or not content.strip():
            return

        self.error = None
        self.tool_call_count = 0
        self.messages.append(ChatMessage(role="user", content=content))
        await self._run()

    async def introduce_current_page(self) -> bool:
        """
        Ask the model to explain the current page the first time it is shown.

        Skipped when the page was reached through ``switch_slide``, when the
        page was already introduced or while a request is in flight.

        Returns
        -------
        bool
            True if an introduction was requested.
        """
        page = self.current_page
        try:
            if (
                self.slide_context is not None
                and self.slide_context.current_page == page
                and page not in self.intro_generated
                and not self.llm_initiated_page_change
                and not self.is_loading
            ):
                logger.info(f"Sending intro for page {page}: {self.slide_context.title}")
                self.intro_generated.add(page)
                await self.send_message(INTRO_PROMPT)
                return True
            return False
        finally:
            self.llm_initiated_page_change = False

    def _run_tool_calls(self, calls: List[ToolCall]) -> bool:
        """
        Execute the tool calls of one assistant message.

        Returns
        -------
        bool
            True if the tool-call cap was reached.
        """
        limit_reached = False
        for call in calls:
            if self.tool_call_count >= self.max_tool_calls:
                logger.warning(
                    f"Maximum number of tool calls ({self.max_tool_calls}) reached, "
                    "stopping iteration"
                )
                result = ToolResult(
                    tool_call_id=call.id,
                    content=(
                        f"Maximum number of tool calls ({self.max_tool_calls}) reached, "
                        "please start a new conversation"
                    )
                )
                limit_reached = True
            else:
                self.tool_call_count += 1
                result = self.executor.execute(call)

            self.messages.append(ChatMessage(
                role="tool",
                content=result.content,
                tool_call_id=result.tool_call_id
            ))
        return limit_reached

    async def _run(self) -> None:
        # Each round either runs at least one tool or hits the cap, so the loop is bounded
        self.is_loading = True
        try:
            tools = TOOL_DEFINITIONS
            while True:
                reply = await self.llm.chat_completion(
                    self._messages_to_send(),
                    system_prompt=build_system_prompt(self.slide_context),
                    tools=tools
                )
                # Calls made when no tools were offered are never answered, so drop them
                calls = reply.tool_calls if tools is not None else []
                self.messages.append(ChatMessage(
                    role="assistant",
                    content=reply.content,
                    tool_calls=calls
                ))

                if not calls:
                    break

                limit_reached = self._run_tool_calls(calls)
                self.messages.append(ChatMessage(role="system", content=CONTINUE_PROMPT))

                if limit_reached:
                    # One last answer without tools
                    tools = None
        except (ValueError, RuntimeError) as e:
            logger.error(f"LLM request error: {e}", exc_info=True)
            self.error = str(e)
            self.tool_call_count = 0
        finally:
            self.is_loading = False

    def clear_messages(self) -> None:
        self.messages = []
        self.intro_generated = set()
        self.tool_call_count = 0
        self.error = None

    def clear_canvas(self) -> None:
        self.canvas.clear()
