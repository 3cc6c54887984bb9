"""Shared fixtures: settings, the bundled context store and a scripted chat model."""

from typing import List

import pytest

from slide_tutor.config import Settings
from slide_tutor.llm_interface import AssistantMessage
from slide_tutor.slide_context import ContextStore
from slide_tutor.tools import ToolCall


class ScriptedLLM:
    """Stands in for LLMInterface, replaying canned replies and recording calls."""

    def __init__(self, settings: Settings, replies: List = None, repeat_last: bool = False):
        self.settings = settings
        self.replies = list(replies or [])
        self.repeat_last = repeat_last
        self.calls = []

    async def chat_completion(self, messages, system_prompt=None, tools=None, temperature=None):
        self.calls.append({
            "messages": messages,
            "system_prompt": system_prompt,
            "tools": tools,
        })
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        reply = self.replies[0] if self.repeat_last and len(self.replies) == 1 else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def text_reply(content: str) -> AssistantMessage:
    return AssistantMessage(content=content, finish_reason="stop")


def tool_reply(name: str, arguments, call_id: str = "call_1", content: str = "") -> AssistantMessage:
    return AssistantMessage(
        content=content,
        tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)],
        finish_reason="tool_calls",
    )


@pytest.fixture
def settings():
    return Settings(llm_api_key="test-key", max_tool_calls=3)


@pytest.fixture
def store():
    return ContextStore.from_json()
