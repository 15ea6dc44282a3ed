"""Business logic use cases."""

import asyncio
from typing import AsyncIterator, Optional

from comment_monitor.adapters.agent import ReactAgentRuntime
from comment_monitor.adapters.mcp import BearerTokenSession, McpCommentSource, McpToolClient
from comment_monitor.adapters.sinks import ConsoleSink
from comment_monitor.config import PromptsConfig, Settings
from comment_monitor.core import (
    AgentError,
    AgentEvent,
    AgentRuntime,
    AgentRuntimeError,
    CommentSource,
    EventSink,
    MonitorJob,
    MonitorRegistry,
    NewReply,
    SessionLifecycle,
    ToolClient,
    translate_stream,
)
from comment_monitor.core.registry import Sleep

DEFAULT_INSTRUCTION = PromptsConfig().instruction


def build_instruction(new_reply: NewReply, template: str = DEFAULT_INSTRUCTION) -> str:
    """Turn a new reply into an instruction for the agent."""
    return template.format(
        document_id=new_reply.document_id,
        text=new_reply.reply.text,
        author=new_reply.reply.author,
        quote=new_reply.comment.quote,
        comment_id=new_reply.comment.comment_id,
    )


class CommentDispatchService:
    """Service for running the agent on instructions and reporting its events."""

    def __init__(
        self,
        agent: Optional[AgentRuntime],
        sink: EventSink,
        instruction_template: str = DEFAULT_INSTRUCTION,
    ) -> None:
        self.agent = agent
        self.sink = sink
        self.instruction_template = instruction_template

    def run_agent_streaming(self, instruction: str) -> AsyncIterator[AgentEvent]:
        """Run the agent and return its translated event stream.

        Raises:
            AgentRuntimeError: if no agent is configured.
        """
        if self.agent is None:
            raise AgentRuntimeError("Agent is not initialized")
        return translate_stream(self.agent.invoke(instruction))

    async def handle_reply(self, new_reply: NewReply) -> bool:
        """Run the agent for a newly detected reply and wait for it to finish.

        Returns:
            True if the agent run completed without error.
        """
        if self.agent is None:
            print("⚠️  Agent not initialized, skipping reply")
            return False

        instruction = build_instruction(new_reply, self.instruction_template)
        print(f"🤖 Running instruction: \"{instruction}\"")
        print("🎯 Agent working...")

        try:
            async for event in self.run_agent_streaming(instruction):
                await self.sink.emit(event)
        except Exception as e:
            await self.sink.emit(AgentError(str(e)))
            return False

        print()
        return True


class MonitorApp:
    """Wire the monitor registry, agent and document service together.

    Exposes the operations used by the HTTP API and the CLI, and owns the
    resources released at shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        source: CommentSource,
        dispatch: CommentDispatchService,
        tool_client: Optional[ToolClient] = None,
        session: Optional[SessionLifecycle] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.settings = settings
        self.source = source
        self.dispatch = dispatch
        self.tool_client = tool_client
        self.session = session
        self.tools_available = 0
        self.registry = MonitorRegistry(source, dispatch.handle_reply, sleep=sleep or asyncio.sleep)

    @classmethod
    def from_settings(cls, settings: Settings, sink: Optional[EventSink] = None) -> "MonitorApp":
        """Build the application with the MCP and agent adapters."""
        session = BearerTokenSession(settings.mcp_auth_token)
        tool_client = McpToolClient(
            settings.mcp.server_url,
            auth=session,
            timeout=settings.mcp.timeout,
        )
        source = McpCommentSource(
            tool_client,
            tool_name=settings.mcp.comment_tool,
            file_type=settings.mcp.file_type,
        )
        agent = ReactAgentRuntime(settings, tool_client) if settings.openai_api_key else None
        dispatch = CommentDispatchService(
            agent=agent,
            sink=sink or ConsoleSink(),
            instruction_template=settings.prompts.instruction,
        )
        return cls(settings, source, dispatch, tool_client=tool_client, session=session)

    @property
    def agent_ready(self) -> bool:
        return self.dispatch.agent is not None

    async def initialize(self) -> bool:
        """Connect to the tool server and report the available tools.

        Failure is not fatal: monitors keep retrying on every tick.
        """
        if self.tool_client is None:
            return False

        print("Connecting to MCP server...")
        try:
            tools = await self.tool_client.list_tools()
        except Exception as e:
            print(f"❌ MCP client initialization failed: {e}")
            print("  Hint: check that the MCP server is running and reachable")
            print("  Hint: check MCP_AUTH_TOKEN if the server requires authentication")
            return False

        self.tools_available = len(tools)
        print(f"✓ MCP client ready, {len(tools)} tools available")
        if not self.agent_ready:
            print("⚠️  OPENAI_API_KEY not set, agent disabled")
        return True

    def start_monitor(self, document_id: str, interval_ms: Optional[int] = None) -> MonitorJob:
        """Start (or restart) monitoring a document."""
        if interval_ms is None:
            interval = self.settings.poll_interval
        else:
            interval = interval_ms / 1000
        return self.registry.start(document_id, interval)

    def stop_monitor(self, document_id: str) -> bool:
        return self.registry.stop(document_id)

    def stop_all_monitors(self) -> int:
        return self.registry.stop_all()

    def list_monitors(self) -> list[str]:
        return self.registry.list_documents()

    def run_agent_streaming(self, instruction: str) -> AsyncIterator[AgentEvent]:
        return self.dispatch.run_agent_streaming(instruction)

    async def shutdown(self) -> None:
        """Stop monitors and release remote resources.

        Each step runs even if an earlier one fails.
        """
        print("\nShutting down...")

        try:
            stopped = await self.registry.shutdown()
            print(f"✓ Stopped {stopped} monitor(s)")
        except Exception as e:
            print(f"⚠️  Error stopping monitors: {e}")

        if self.session is not None:
            try:
                await self.session.cleanup()
                print("✓ Session credentials cleaned up")
            except Exception as e:
                print(f"⚠️  Error cleaning up session: {e}")

        if self.tool_client is not None:
            try:
                await self.tool_client.close()
                print("✓ MCP client connection closed")
            except Exception as e:
                print(f"⚠️  Error closing MCP client: {e}")

        print("Server stopped")
