"""Value types passed between the tool, the session client and the transport."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

SUMMARY_MESSAGE_TYPE = "summary"


@dataclass(slots=True, frozen=True)
class SummaryMessage:
    """Conversation-leaf summary event carrying a human-readable title."""

    summary: str
    leaf_uuid: str = field(default_factory=lambda: str(uuid.uuid4()))
    type: str = SUMMARY_MESSAGE_TYPE

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "summary": self.summary,
            "leafUuid": self.leaf_uuid,
        }


@dataclass(slots=True, frozen=True)
class TitleChangeResult:
    """Outcome of delivering a title change to the session client."""

    success: bool
    error: Optional[str] = None


@dataclass(slots=True, frozen=True)
class TitleChangeResponse:
    """Tool-result envelope: a single text block plus the error flag."""

    text: str
    is_error: bool
