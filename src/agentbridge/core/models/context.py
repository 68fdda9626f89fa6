"""Request context — per-send data supplied by the embedding caller."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ContextItemType(str, Enum):
    TEXT = "text"
    FILE = "file"
    CODE_SNIPPET = "code_snippet"
    IMAGE = "image"
    CUSTOM = "custom"


@dataclass
class ContextItem:
    """Free-form item attached by the caller; the bridge never reads it."""

    type: ContextItemType = ContextItemType.TEXT
    name: str = ""
    content: str = ""
    mime_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class RequestContext:
    """Per-send context passed to ``ProcessOrchestrator.send``.

    Only ``system_prompt`` and ``allowed_tools`` shape the agent's argument
    vector; ``items``, ``description`` and ``metadata`` ride along for the
    embedding application.
    """

    system_prompt: str | None = None
    allowed_tools: list[str] = field(default_factory=list)
    items: list[ContextItem] = field(default_factory=list)
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


__all__ = ["ContextItem", "ContextItemType", "RequestContext"]
