"""Agent runtime adapters."""

from comment_monitor.adapters.agent.react_agent import ReactAgentRuntime

__all__ = ["ReactAgentRuntime"]
