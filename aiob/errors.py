"""
AIOB error taxonomy.

Every failure category the handoff pipeline can produce has its own
exception class, so callers can branch on the type (and, for agent
failures, on ``kind``) instead of parsing messages.
"""

from typing import Optional


class AiobError(Exception):
    """Base class for all AIOB errors."""

    pass


class FormatError(AiobError):
    """Raised when AICF text is malformed or a record cannot be encoded."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NoEligibleAgentError(AiobError):
    """Raised when agent selection is attempted against an empty registry."""

    pass


class InvalidTaskError(AiobError):
    """Raised by a strict TaskAnalyzer when the task text is empty."""

    pass


class AgentError(AiobError):
    """
    Wraps a failure of an external agent invocation.

    ``kind`` is one of ``timeout``, ``rate_limit``, ``malformed_response``,
    ``provider`` or ``unavailable``.
    """

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    MALFORMED_RESPONSE = "malformed_response"
    PROVIDER = "provider"
    UNAVAILABLE = "unavailable"

    def __init__(self, message: str, kind: str = PROVIDER, agent_id: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.agent_id = agent_id

    def __str__(self) -> str:
        return f"{self.kind}: {super().__str__()}"
