"""Tool dispatcher package exports."""

from speech_relay.tools.dispatcher import (
    CapabilityDescriptor,
    ToolDispatcher,
    ToolResult,
)

__all__ = ["CapabilityDescriptor", "ToolDispatcher", "ToolResult"]
