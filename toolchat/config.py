"""Model configuration and built-in agent presets."""

from __future__ import annotations

from dataclasses import dataclass, replace
import os
from typing import Any, Literal

from ._exceptions import AuthenticationError, ConfigError

WireFormat = Literal["anthropic", "openai"]

DEFAULT_SYSTEM = (
    "You are an assistant working inside a code workspace. "
    "Use the available tools to change the layout, highlight code, render charts "
    "and commit changes when the user asks for it. Keep answers short."
)

GH_MODELS_URL = "https://models.inference.ai.azure.com/chat/completions"
CLAUDE_PROXY_URL = "http://127.0.0.1:7337/claude"
GEMINI_PROXY_URL = "http://127.0.0.1:7338"


@dataclass(frozen=True)
class ModelConfig:
    """Everything needed to address one model backend."""

    name: str
    model: str
    endpoint: str
    wire_format: WireFormat = "anthropic"
    max_tokens: int = 1024
    system: str = DEFAULT_SYSTEM
    api_key: str | None = None
    auth_scheme: str = "bearer"
    requires_auth: bool = False
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.name


PRESETS: dict[str, ModelConfig] = {
    "claude": ModelConfig(
        name="claude", model="claude-sonnet-4-6", endpoint=CLAUDE_PROXY_URL, label="claude"
    ),
    "claude-haiku": ModelConfig(
        name="claude-haiku",
        model="claude-haiku-4-5-20251001",
        endpoint=CLAUDE_PROXY_URL,
        label="claude·haiku",
    ),
    "claude-opus": ModelConfig(
        name="claude-opus", model="claude-opus-4-6", endpoint=CLAUDE_PROXY_URL, label="claude·opus"
    ),
    "gpt": ModelConfig(
        name="gpt",
        model="gpt-4o-mini",
        endpoint=GH_MODELS_URL,
        wire_format="openai",
        requires_auth=True,
        label="GitHub Models",
    ),
    "gemini": ModelConfig(
        name="gemini",
        model="gemini-2.0-flash",
        endpoint=GEMINI_PROXY_URL,
        wire_format="openai",
        label="Gemini proxy",
    ),
}


def load_config(name: str | None = None, **overrides: Any) -> ModelConfig:
    """
    Resolve a preset and apply environment and explicit overrides.

    Environment variables: TOOLCHAT_AGENT, TOOLCHAT_MODEL, TOOLCHAT_ENDPOINT,
    TOOLCHAT_MAX_TOKENS, TOOLCHAT_API_KEY (GITHUB_TOKEN for presets that
    need a bearer token). Explicit keyword overrides win over the environment;
    ``None`` values are ignored.
    """
    name = name or os.environ.get("TOOLCHAT_AGENT") or "claude"
    try:
        config = PRESETS[name]
    except KeyError:
        raise ConfigError(f"Unknown agent: {name}. Choose one of: {', '.join(PRESETS)}") from None

    env: dict[str, Any] = {}
    if os.environ.get("TOOLCHAT_MODEL"):
        env["model"] = os.environ["TOOLCHAT_MODEL"]
    if os.environ.get("TOOLCHAT_ENDPOINT"):
        env["endpoint"] = os.environ["TOOLCHAT_ENDPOINT"]
    if os.environ.get("TOOLCHAT_MAX_TOKENS"):
        try:
            env["max_tokens"] = int(os.environ["TOOLCHAT_MAX_TOKENS"])
        except ValueError:
            raise ConfigError("TOOLCHAT_MAX_TOKENS must be an integer") from None
    api_key = os.environ.get("TOOLCHAT_API_KEY")
    if not api_key and config.requires_auth:
        api_key = os.environ.get("GITHUB_TOKEN")
    if api_key:
        env["api_key"] = api_key

    env.update({key: value for key, value in overrides.items() if value is not None})
    config = replace(config, **env)

    if config.requires_auth and not config.api_key:
        raise AuthenticationError(
            f"{config.display_name} needs a token. Set TOOLCHAT_API_KEY or GITHUB_TOKEN."
        )
    if config.max_tokens <= 0:
        raise ConfigError("max_tokens must be positive")
    return config
