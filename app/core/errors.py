from __future__ import annotations


class AssistantError(Exception):
    """Base class for errors raised by the assistant core."""


class CatalogIntegrityError(AssistantError):
    """A flow catalog failed validation; `problems` lists every violation found."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid flow catalog")


class UnknownOptionError(AssistantError):
    def __init__(self, flow_id: str, option_id: str):
        self.flow_id = flow_id
        self.option_id = option_id
        super().__init__(f"Flow {flow_id!r} has no option {option_id!r}")


class SessionNotFoundError(AssistantError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Unknown chat session {session_id!r}")


class GenerationError(AssistantError):
    """Transport, quota or malformed-response failure from the text generation service."""


class EventStoreError(AssistantError):
    """The chat metrics event store could not be reached or rejected a request."""
