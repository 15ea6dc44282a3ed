"""MCP tool client over streamable HTTP."""

import asyncio
from datetime import timedelta
from typing import Any, Generator, Optional

import httpx
from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation

from comment_monitor.core.interfaces import SessionLifecycle, ToolCallError, ToolClient


class BearerTokenSession(httpx.Auth, SessionLifecycle):
    """Bearer credential for the document tool server."""

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self.token:
            request.headers["Authorization"] = f"Bearer {self.token}"
        yield request

    async def cleanup(self) -> None:
        """Drop the credential so no further requests are authenticated."""
        self.token = None


class McpToolClient(ToolClient):
    """Client for an MCP server reachable over streamable HTTP.

    The MCP session lives in a dedicated task for its whole lifetime, so it
    can be opened from a monitor tick and closed from shutdown.
    """

    def __init__(
        self,
        server_url: str,
        auth: Optional[httpx.Auth] = None,
        timeout: float = 30.0,
        client_name: str = "Comment Monitor",
    ) -> None:
        self.server_url = server_url
        self.auth = auth
        self.timeout = timeout
        self.client_name = client_name
        self._session: Optional[ClientSession] = None
        self._runner: Optional[asyncio.Task] = None
        self._stop: Optional[asyncio.Event] = None
        self._connect_lock = asyncio.Lock()
        self._tools: Optional[list[dict[str, Any]]] = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the MCP session and perform the initialize handshake."""
        async with self._connect_lock:
            if self._session is not None:
                return

            ready = asyncio.get_running_loop().create_future()
            self._stop = asyncio.Event()
            self._runner = asyncio.create_task(self._hold_session(ready, self._stop))
            await ready

    async def list_tools(self) -> list[dict[str, Any]]:
        """List tools with their input schemas (cached after first call)."""
        if self._tools is None:
            session = await self._get_session()
            try:
                result = await session.list_tools()
            except Exception as e:
                raise ToolCallError(f"MCP tools/list failed: {e}") from e
            self._tools = [
                {
                    "name": tool.name,
                    "description": tool.description or "",
                    "inputSchema": tool.inputSchema,
                }
                for tool in result.tools
            ]
        return self._tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Call a tool and return the concatenated text content.

        Raises:
            ToolCallError: on transport failure or when the tool reports an error.
        """
        session = await self._get_session()
        try:
            result = await session.call_tool(name, arguments)
        except Exception as e:
            raise ToolCallError(f"MCP call to {name} failed: {e}") from e

        text = "".join(
            block.text for block in result.content if getattr(block, "type", None) == "text"
        )
        if result.isError:
            raise ToolCallError(f"Tool {name} failed: {text or 'unknown error'}")
        return text

    async def close(self) -> None:
        """Terminate the MCP session and wait for its task to finish."""
        runner, self._runner = self._runner, None
        if runner is None:
            return
        if self._stop is not None:
            self._stop.set()
        try:
            await runner
        except Exception as e:
            print(f"⚠️  Could not terminate MCP session: {e}")
        finally:
            self._session = None
            self._tools = None

    async def _get_session(self) -> ClientSession:
        await self.connect()
        if self._session is None:
            raise ToolCallError("MCP session closed")
        return self._session

    async def _hold_session(self, ready: asyncio.Future, stop: asyncio.Event) -> None:
        try:
            async with streamablehttp_client(
                self.server_url,
                timeout=timedelta(seconds=self.timeout),
                auth=self.auth,
            ) as (read_stream, write_stream, _):
                async with ClientSession(
                    read_stream,
                    write_stream,
                    client_info=Implementation(name=self.client_name, version="0.1.0"),
                ) as session:
                    result = await session.initialize()
                    self._session = session
                    print(f"✓ Connected to MCP server {result.serverInfo.name}")
                    ready.set_result(None)
                    await stop.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(ToolCallError(f"MCP initialize failed: {e}"))
            else:
                print(f"⚠️  MCP session ended: {e}")
        finally:
            self._session = None
            if not ready.done():
                ready.set_exception(ToolCallError("MCP session closed before initialize"))
