"""Error taxonomy shared by the GitHub client, the store and the services."""
from typing import Optional


class DevInsightError(Exception):
    """Base class for all DevInsight errors."""
    pass


class UpstreamError(DevInsightError):
    """GitHub answered with an error status."""
    def __init__(self, status: Optional[int], message: str):
        super().__init__(f"GitHub API error ({status}): {message}")
        self.status = status
        self.message = message


class TransportError(DevInsightError):
    """The GitHub API could not be reached (network failure or timeout)."""
    pass


class NotFoundError(DevInsightError):
    """A requested entity does not exist."""
    pass


class AuthorizationError(DevInsightError):
    """The acting user does not own or subscribe to the target entity."""
    pass


class ValidationError(DevInsightError):
    """Malformed or unsupported input."""
    pass


class DeliveryError(DevInsightError):
    """A notification could not be delivered."""
    pass
