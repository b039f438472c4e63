from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fleetassist.conversation import Conversation
    from fleetassist.state import SessionState


@dataclass
class Context:
    """Runtime context injected into tools that declare a ``context`` parameter.

    The orchestrator builds one Context per conversation and the registry
    passes it to handlers automatically.

    Args:
        conversation: The conversation whose turn is being executed.
        state: Session-scoped state shared by every tool call of the
            conversation.
    """

    conversation: Conversation
    state: SessionState
