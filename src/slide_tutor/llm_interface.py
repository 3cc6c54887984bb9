"""
LLM Interface Module
------------------
Handles interactions with an OpenAI-compatible chat-completions API.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from slide_tutor.config import Settings
from slide_tutor.tools import ToolCall

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 120


@dataclass
class AssistantMessage:
    """The model's reply: text and/or tool calls."""

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = ""


class LLMInterface:
    """Interface for interacting with the chat model."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize the LLM interface with the API settings."""
        self.settings = settings or Settings.from_env()

    @property
    def endpoint(self) -> str:
        return self.settings.llm_base_url.rstrip("/") + "/chat/completions"

    def build_payload(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Build the request body for a chat completion.

        Parameters
        ----------
        messages : List[Dict[str, Any]]
            Conversation in wire format, without the system prompt.
        system_prompt : Optional[str]
            Prepended as a system message when given.
        tools : Optional[List[Dict[str, Any]]]
            Tool definitions offered to the model.
        temperature : Optional[float]
            Overrides the configured temperature.

        Returns
        -------
        Dict[str, Any]
            The JSON payload.
        """
        full_messages = list(messages)
        if system_prompt:
            full_messages.insert(0, {"role": "system", "content": system_prompt})

        payload = {
            "model": self.settings.llm_model,
            "messages": full_messages,
            "temperature": self.settings.temperature if temperature is None else temperature,
        }
        if tools:
            payload["tools"] = tools
        return payload

    @staticmethod
    def parse_response(result: Dict[str, Any]) -> AssistantMessage:
        """
        Extract the first choice of a chat-completions response.

        Raises
        ------
        RuntimeError
            If the response carries no choice, no message, or items of the wrong shape.
        """
        invalid = RuntimeError("LLM returned an invalid response format")

        choices = result.get("choices") if isinstance(result, dict) else None
        if not choices or not isinstance(choices, list):
            raise invalid

        choice = choices[0]
        if not isinstance(choice, dict):
            raise invalid
        message = choice.get("message")
        if not message:
            raise RuntimeError("LLM response is missing the message content")
        if not isinstance(message, dict):
            raise invalid

        raw_calls = message.get("tool_calls") or []
        if not isinstance(raw_calls, list):
            raise invalid

        tool_calls = []
        for raw in raw_calls:
            if not isinstance(raw, dict):
                raise invalid
            if raw.get("type", "function") != "function":
                continue
            function = raw.get("function") or {}
            if not isinstance(function, dict):
                raise invalid
            tool_calls.append(ToolCall(
                id=raw.get("id", ""),
                name=function.get("name", ""),
                arguments=function.get("arguments", "{}")
            ))

        content = message.get("content") or ""
        return AssistantMessage(
            content=content if isinstance(content, str) else str(content),
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or ""
        )

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None
    ) -> AssistantMessage:
        """
        Request a chat completion.

        Parameters
        ----------
        messages : List[Dict[str, Any]]
            Conversation in wire format.
        system_prompt : Optional[str]
            System prompt for this call.
        tools : Optional[List[Dict[str, Any]]]
            Tool definitions offered to the model.
        temperature : Optional[float]
            Sampling temperature override.

        Returns
        -------
        AssistantMessage
            The model's reply.

        Raises
        ------
        ValueError
            If the API key is missing.
        RuntimeError
            If the request fails or the response is malformed.
        """
        if not self.settings.llm_api_key:
            raise ValueError("LLM API key not found. Set LLM_API_KEY in .env")

        headers = {
            "Authorization": f"Bearer {self.settings.llm_api_key}",
            "Content-Type": "application/json"
        }
        payload = self.build_payload(messages, system_prompt, tools, temperature)
        logger.info(
            f"Requesting completion from {self.settings.llm_model} "
            f"with {len(payload['messages'])} messages"
        )

        try:
            timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.endpoint,
                    headers=headers,
                    json=payload
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise RuntimeError(
                            f"LLM API request failed with status {response.status}: {body[:500]}"
                        )
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RuntimeError(f"LLM API request failed: {e}")

        message = self.parse_response(result)
        logger.info(
            f"Completion finished ({message.finish_reason or 'unknown'}), "
            f"{len(message.tool_calls)} tool call(s)"
        )
        return message
