"""Tool-using ReAct agent over an OpenAI-compatible chat completions API."""

import asyncio
import json
from typing import Any, AsyncIterator, Optional

import httpx

from comment_monitor.config import Settings
from comment_monitor.core import AgentRuntime, AgentRuntimeError, ToolCallError, ToolClient


class ReactAgentRuntime(AgentRuntime):
    """Alternate model turns and tool executions until the model answers.

    Progress is yielded as update chunks keyed by node: ``{"agent": ...}``
    after each model turn, ``{"tools": ...}`` after each batch of tool
    executions and ``{"__end__": True, "messages": ...}`` when done. The
    number of model turns per run is capped by ``agent.max_iterations``.
    """

    def __init__(self, settings: Settings, tool_client: ToolClient) -> None:
        self.settings = settings
        self.tool_client = tool_client
        self.api_key = settings.openai_api_key
        self.base_url = settings.openai_api_base.rstrip("/")
        self.model = settings.agent.model
        self.temperature = settings.agent.temperature
        self.max_tokens = settings.agent.max_tokens
        self.max_iterations = settings.agent.max_iterations
        self.max_retries = settings.agent.max_retries
        self.initial_retry_delay = settings.agent.initial_retry_delay
        self.timeout = settings.agent.timeout
        self.system_prompt = settings.prompts.system

    async def invoke(self, instruction: str) -> AsyncIterator[dict[str, Any]]:
        """Run the agent on an instruction and yield progress chunks."""
        tools = await self._tool_specs()
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": instruction},
        ]

        for _ in range(self.max_iterations):
            response = await self._call_api(messages, tools)
            message = self._first_message(response)

            assistant: dict[str, Any] = {"role": "assistant", "content": message.get("content") or ""}
            tool_calls = message.get("tool_calls") or []
            if tool_calls:
                assistant["tool_calls"] = tool_calls
            messages.append(assistant)

            yield {"agent": {"messages": [self._agent_message(message, response.get("usage"))]}}

            if not tool_calls:
                yield {"__end__": True, "messages": messages}
                return

            tool_messages = []
            for call in tool_calls:
                function = call.get("function") or {}
                tool_message = {
                    "role": "tool",
                    "tool_call_id": call.get("id", ""),
                    "name": function.get("name", ""),
                    "content": await self._run_tool(function),
                }
                messages.append(tool_message)
                tool_messages.append(tool_message)

            yield {"tools": {"messages": tool_messages}}

        raise AgentRuntimeError(
            f"Agent stopped after {self.max_iterations} iterations without a final answer"
        )

    async def _tool_specs(self) -> list[dict[str, Any]]:
        """Describe the server's tools as chat-completions functions."""
        try:
            tools = await self.tool_client.list_tools()
        except ToolCallError as e:
            raise AgentRuntimeError(f"Could not list tools: {e}") from e

        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("inputSchema") or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
            if tool.get("name")
        ]

    async def _run_tool(self, function: dict[str, Any]) -> str:
        """Execute one tool call; failures become an error payload for the model."""
        name = function.get("name", "")
        try:
            arguments = json.loads(function.get("arguments") or "{}")
        except json.JSONDecodeError as e:
            return json.dumps({"code": -1, "msg": f"Invalid arguments: {e}"})

        try:
            return await self.tool_client.call_tool(name, arguments)
        except ToolCallError as e:
            return json.dumps({"code": -1, "msg": str(e)}, ensure_ascii=False)

    def _first_message(self, response: dict[str, Any]) -> dict[str, Any]:
        try:
            return response["choices"][0]["message"] or {}
        except (KeyError, IndexError, TypeError) as e:
            raise AgentRuntimeError(f"Malformed completion response: {e}") from e

    def _agent_message(self, message: dict[str, Any], usage: Optional[dict[str, Any]]) -> dict[str, Any]:
        agent_message: dict[str, Any] = {
            "content": message.get("content") or "",
            "additional_kwargs": {},
        }
        if message.get("reasoning_content"):
            agent_message["reasoning_content"] = message["reasoning_content"]
        if message.get("tool_calls"):
            agent_message["additional_kwargs"]["tool_calls"] = message["tool_calls"]
        if usage:
            agent_message["usage_metadata"] = {
                "input_tokens": usage.get("prompt_tokens", 0),
                "output_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            }
        return agent_message

    async def _call_api(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> dict[str, Any]:
        """Call chat completions with retry logic."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            payload["tools"] = tools

        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        f"{self.base_url}/chat/completions",
                        headers={
                            "Authorization": f"Bearer {self.api_key}",
                            "content-type": "application/json",
                        },
                        json=payload,
                    )

                    if response.status_code == 200:
                        return response.json()

                    # Rate limit - retry with backoff
                    if response.status_code == 429:
                        retry_after = self._get_retry_delay(response, attempt)
                        print(f"⏳ Rate limit hit, retrying after {retry_after:.1f}s (attempt {attempt + 1}/{self.max_retries})")
                        last_exception = AgentRuntimeError("Rate limited by model API")
                        await asyncio.sleep(retry_after)
                        continue

                    # Server errors - retry with backoff
                    if response.status_code >= 500:
                        retry_delay = self.initial_retry_delay * (2 ** attempt)
                        print(f"⚠️  Server error {response.status_code}, retrying after {retry_delay:.1f}s")
                        last_exception = AgentRuntimeError(f"Model API error {response.status_code}")
                        await asyncio.sleep(retry_delay)
                        continue

                    raise AgentRuntimeError(
                        f"Model API error {response.status_code}: {response.text[:200]}"
                    )

            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries - 1:
                    retry_delay = self.initial_retry_delay * (2 ** attempt)
                    print(f"⚠️  Network error, retrying after {retry_delay:.1f}s")
                    await asyncio.sleep(retry_delay)
                    continue
                raise AgentRuntimeError(f"Model API unreachable: {e}") from e

        raise AgentRuntimeError(f"Failed to call model API after {self.max_retries} retries: {last_exception}")

    def _get_retry_delay(self, response: httpx.Response, attempt: int) -> float:
        """Calculate retry delay from response headers or use exponential backoff."""
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass

        return self.initial_retry_delay * (2 ** attempt)
