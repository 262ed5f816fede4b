"""Saved chat sessions as JSON files."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path

from ._types import Turn
from .conversation import ConversationState

logger = logging.getLogger(__name__)

DEFAULT_SESSION_PATH = Path.home() / ".toolchat" / "session.json"


class SessionStore:
    """Reads and writes ``{"messages": [...], "savedAt": ...}`` blobs."""

    def __init__(self, path: str | Path = DEFAULT_SESSION_PATH) -> None:
        self.path = Path(path)

    def save(self, conversation: ConversationState) -> None:
        payload = {
            "messages": conversation.to_messages(),
            "savedAt": datetime.now(timezone.utc).isoformat(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def load(self) -> list[Turn]:
        """Return saved turns; a missing or unreadable file yields an empty list."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return [Turn.from_dict(message) for message in data.get("messages", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return []

    def restore(self) -> ConversationState:
        return ConversationState(self.load())

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
