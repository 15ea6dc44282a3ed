"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class AgentConfig:
    """Agent model settings."""
    model: str = "kimi-k2-250711"
    temperature: float = 0.3
    max_tokens: int = 4096
    max_iterations: int = 100
    max_retries: int = 3
    initial_retry_delay: float = 2.0
    timeout: float = 120.0


@dataclass
class McpConfig:
    """Document tool server settings."""
    server_url: str = "https://fms.666444.best/mcp"
    comment_tool: str = "drive_comment_list"
    file_type: str = "docx"
    timeout: float = 30.0


@dataclass
class MonitoringConfig:
    """Monitoring settings."""
    poll_interval: float = 1.0


@dataclass
class ServerConfig:
    """HTTP server settings."""
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass
class PromptsConfig:
    """Prompts for the agent."""
    instruction: str = (
        "Edit this document (document ID: {document_id}) "
        "according to the following request: {text}"
    )
    system: str = (
        "You are an assistant that edits collaborative documents. "
        "Use the available tools to read and modify the document."
    )


@dataclass
class Settings:
    """Application settings."""

    # API keys (from environment only)
    openai_api_key: str = ""
    openai_api_base: str = "https://api.openai.com/v1"
    mcp_auth_token: Optional[str] = None

    # Config sections
    agent: AgentConfig = field(default_factory=AgentConfig)
    mcp: McpConfig = field(default_factory=McpConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)

    @property
    def poll_interval(self) -> float:
        return self.monitoring.poll_interval

    @property
    def mcp_server_url(self) -> str:
        return self.mcp.server_url


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY") or os.getenv("VOLCES_API_KEY", ""),
        mcp_auth_token=os.getenv("MCP_AUTH_TOKEN"),
    )

    sections = {
        "agent": settings.agent,
        "mcp": settings.mcp,
        "monitoring": settings.monitoring,
        "server": settings.server,
        "prompts": settings.prompts,
    }
    for name, section in sections.items():
        for key, value in (config.get(name) or {}).items():
            if hasattr(section, key):
                setattr(section, key, value)

    # Environment overrides YAML for deployment-specific values
    if os.getenv("OPENAI_API_BASE"):
        settings.openai_api_base = os.environ["OPENAI_API_BASE"]
    elif config.get("openai_api_base"):
        settings.openai_api_base = config["openai_api_base"]

    if os.getenv("MCP_SERVER_URL"):
        settings.mcp.server_url = os.environ["MCP_SERVER_URL"]

    if os.getenv("PORT"):
        settings.server.port = int(os.environ["PORT"])

    return settings
