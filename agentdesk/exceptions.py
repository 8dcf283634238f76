"""
Error taxonomy for the knowledge core.

- AgentNotFound: unknown agent, or one owned by someone else
- ExtractionError: a file could not be converted to text
- EmbeddingFailure: the embedding provider failed or timed out
- DimensionMismatch: vectors of different lengths were compared
- GenerationFailure: the completion provider failed
- GatewayError: the WhatsApp gateway rejected a request
"""

from typing import Optional


class AgentDeskError(Exception):
    """Base class for all knowledge-core errors."""


class AgentNotFound(AgentDeskError, LookupError):
    """Raised when an agent does not exist or belongs to another owner."""

    def __init__(self, agent_id):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class ExtractionError(AgentDeskError):
    """Raised by an extractor when a file cannot be turned into text."""

    def __init__(self, message: str, unsupported: bool = False):
        super().__init__(message)
        self.unsupported = unsupported


class EmbeddingFailure(AgentDeskError):
    """Raised when the external embedding call fails."""


class DimensionMismatch(AgentDeskError, ValueError):
    """Raised when comparing vectors of different dimensionality."""

    def __init__(self, left: int, right: int):
        super().__init__(
            f"Cannot compare vectors of different dimensions: {left} != {right}"
        )
        self.left = left
        self.right = right


class GenerationFailure(AgentDeskError):
    """Raised when the completion provider cannot produce a reply."""


class GatewayError(AgentDeskError):
    """Raised when the WhatsApp gateway returns an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
