"""Ticket-tracker collaborator interface.

The pipeline only consumes ticket content as extra prompt text; fetching is
delegated to whatever ``TicketProvider`` the deployment injects.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Protocol

_DEFAULT_KEY_PATTERN = re.compile(r"\b([A-Z][A-Z0-9]+-\d+)\b", re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class TicketContext:
    key: str
    summary: str
    description: str = ""
    acceptance_criteria: str | None = None
    attachments: List[str] = field(default_factory=list)
    status: str = "Unknown"
    priority: str = "Medium"

    def as_prompt_text(self) -> str:
        lines = [
            f"Ticket: {self.key} ({self.status}, priority {self.priority})",
            f"Summary: {self.summary}",
            "Description:",
            self.description or "(no description)",
        ]
        if self.acceptance_criteria:
            lines.extend(["Acceptance criteria:", self.acceptance_criteria])
        if self.attachments:
            lines.append("Attachments: " + ", ".join(self.attachments))
        return "\n".join(lines)


class TicketProvider(Protocol):
    async def fetch(self, ticket_id: str) -> TicketContext | None: ...


def extract_ticket_id(text: str | None, pattern: str | None = None) -> str | None:
    """Find the first ``ABC-123`` style ticket key in ``text``."""

    if not text:
        return None
    regex = re.compile(rf"((?:{pattern})-\d+)", re.IGNORECASE) if pattern else _DEFAULT_KEY_PATTERN
    match = regex.search(text)
    return match.group(1).upper() if match else None
