"""Procedure registry - named server-side operations callers invoke by name."""

from typing import Any, Callable

from sqlmodel import Session

from roomchat.core.errors import NotFound
from roomchat.services.procedures.conversations import (
    ensure_conversation,
    ensure_support_conversation,
    ensure_user_host_conversation,
)

Procedure = Callable[..., Any]


class ProcedureRegistry:
    def __init__(self) -> None:
        self._procedures: dict[str, Procedure] = {}

    def register(self, name: str, procedure: Procedure) -> None:
        self._procedures[name] = procedure

    def get(self, name: str) -> Procedure | None:
        return self._procedures.get(name)

    def names(self) -> list[str]:
        return sorted(self._procedures)

    def call(self, name: str, session: Session, **kwargs: Any) -> Any:
        procedure = self.get(name)
        if procedure is None:
            raise NotFound(f"Unknown procedure: {name}")
        return procedure(session, **kwargs)


def create_default_registry() -> ProcedureRegistry:
    """Create a registry with all default procedures."""
    registry = ProcedureRegistry()

    # Conversations
    registry.register("ensure_conversation", ensure_conversation)
    registry.register("start_or_get_dm", lambda session, p_user1, p_user2: ensure_conversation(session, p_user1, p_user2))
    registry.register("ensure_user_host_conversation", ensure_user_host_conversation)
    registry.register("ensure_support_conversation", ensure_support_conversation)

    return registry


procedures = create_default_registry()
