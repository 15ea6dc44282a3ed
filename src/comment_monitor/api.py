"""FastAPI application for the comment monitor."""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import RedirectResponse, StreamingResponse
from pydantic import BaseModel

from comment_monitor.adapters.sinks import encode_sse_stream
from comment_monitor.config import Settings, get_settings
from comment_monitor.core.documents import parse_document_url
from comment_monitor.use_cases import MonitorApp

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class StartMonitor(BaseModel):
    url: Optional[str] = None
    document_id: Optional[str] = None
    interval_ms: Optional[int] = None


class ExecuteAgent(BaseModel):
    message: str = ""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(monitor: Optional[MonitorApp] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create the HTTP API around a monitor application."""
    settings = settings or (monitor.settings if monitor else get_settings())
    monitor = monitor or MonitorApp.from_settings(settings)
    started = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        print(f"Comment monitor listening on http://{settings.server.host}:{settings.server.port}")
        print("Usage: open /?url=<document url> to start monitoring")
        await monitor.initialize()
        try:
            yield
        finally:
            await monitor.shutdown()

    app = FastAPI(title="Comment Monitor", lifespan=lifespan)
    app.state.monitor = monitor

    @app.get("/")
    async def index(url: Optional[str] = None):
        if not url:
            return {
                "message": "Document comment monitor",
                "status": "running",
                "active_monitors": len(monitor.list_monitors()),
                "timestamp": _now(),
            }

        print(f"Received document URL: {url}")
        ref = parse_document_url(url)
        if ref:
            print(f"  Document type: {ref.kind}")
            print(f"  Document ID: {ref.document_id}")
            monitor.start_monitor(ref.document_id)
        else:
            print("⚠️  Could not parse document id, URL format may be wrong")

        return RedirectResponse(url, status_code=302)

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "uptime": time.time() - started,
            "timestamp": _now(),
        }

    @app.get("/api/monitors")
    async def list_monitors():
        monitors = [job.status() for job in monitor.registry.jobs()]
        return {
            "message": "Active monitors",
            "monitors": monitors,
            "count": len(monitors),
            "timestamp": _now(),
        }

    @app.post("/api/monitors")
    async def start_monitor(body: StartMonitor):
        document_id = body.document_id
        if not document_id and body.url:
            ref = parse_document_url(body.url)
            document_id = ref.document_id if ref else None
        if not document_id:
            raise HTTPException(status_code=400, detail="Provide a document URL or document_id")
        if body.interval_ms is not None and body.interval_ms <= 0:
            raise HTTPException(status_code=400, detail="interval_ms must be positive")

        job = monitor.start_monitor(document_id, body.interval_ms)
        return {"message": "Monitor started", "monitor": job.status(), "timestamp": _now()}

    @app.delete("/api/monitors/{document_id}")
    async def stop_monitor(document_id: str):
        if not monitor.stop_monitor(document_id):
            raise HTTPException(status_code=404, detail=f"Monitor {document_id} not found")
        return {"message": "Monitor stopped", "document_id": document_id, "timestamp": _now()}

    @app.delete("/api/monitors")
    async def stop_all_monitors():
        stopped = monitor.stop_all_monitors()
        return {"message": "All monitors stopped", "stopped_count": stopped, "timestamp": _now()}

    @app.get("/api/mcp/tools")
    async def list_tools():
        if monitor.tool_client is None:
            raise HTTPException(status_code=503, detail="MCP client not initialized")
        try:
            tools = await monitor.tool_client.list_tools()
        except Exception as e:
            print(f"❌ Failed to list MCP tools: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to list MCP tools: {e}") from e

        return {
            "message": "MCP tools",
            "tools": [
                {
                    "name": tool.get("name"),
                    "description": tool.get("description", ""),
                    "input_schema": tool.get("inputSchema", {}),
                }
                for tool in tools
            ],
            "count": len(tools),
            "timestamp": _now(),
        }

    @app.get("/api/mcp/status")
    async def mcp_status():
        client = monitor.tool_client
        return {
            "message": "MCP client status",
            "connected": bool(getattr(client, "connected", client is not None)),
            "server_url": settings.mcp.server_url,
            "tools_available": monitor.tools_available,
            "agent_ready": monitor.agent_ready,
            "timestamp": _now(),
        }

    @app.post("/api/agent/execute")
    async def execute_agent(body: ExecuteAgent):
        if not monitor.agent_ready:
            raise HTTPException(status_code=503, detail="Agent not initialized")
        if not body.message:
            raise HTTPException(status_code=400, detail="Provide a message")

        print(f"📨 Agent request: {body.message}")
        return StreamingResponse(
            encode_sse_stream(monitor.run_agent_streaming(body.message)),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app
