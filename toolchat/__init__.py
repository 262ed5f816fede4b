"""
toolchat - streaming chat client with an agentic tool loop.

Parses event-stream responses from a model backend into conversation turns,
runs the tools the model asks for and feeds the results back.
"""

__version__ = "0.1.0"

from ._exceptions import (
    AuthenticationError,
    ConfigError,
    ConversationBusyError,
    NotFoundError,
    RateLimitError,
    RequestCancelled,
    StreamError,
    ToolchatError,
    TransportError,
    ValidationError,
)
from ._types import ContentBlock, TextBlock, ToolInvocation, ToolResult, Turn
from .assembler import ContentBlockAssembler, StreamSession, parse_tool_arguments
from .client import ModelClient
from .config import PRESETS, ModelConfig, load_config
from .conversation import AgenticLoop, ConversationState, LoopObserver, LoopState
from .diagnostics import DiagnosticsSink
from .session import SessionStore
from .streaming import CancelToken, EventStreamParser, ProtocolEvent, parse_sse, parse_stream
from .tools import Tool, ToolExecutor, ToolRegistry

__all__ = [
    "PRESETS",
    "AgenticLoop",
    "AuthenticationError",
    "CancelToken",
    "ConfigError",
    "ContentBlock",
    "ContentBlockAssembler",
    "ConversationBusyError",
    "ConversationState",
    "DiagnosticsSink",
    "EventStreamParser",
    "LoopObserver",
    "LoopState",
    "ModelClient",
    "ModelConfig",
    "NotFoundError",
    "ProtocolEvent",
    "RateLimitError",
    "RequestCancelled",
    "SessionStore",
    "StreamError",
    "StreamSession",
    "TextBlock",
    "Tool",
    "ToolExecutor",
    "ToolInvocation",
    "ToolRegistry",
    "ToolResult",
    "ToolchatError",
    "TransportError",
    "Turn",
    "ValidationError",
    "load_config",
    "parse_sse",
    "parse_stream",
    "parse_tool_arguments",
]
