"""Domain errors raised by the engagement core."""

from typing import Any


class EngagementError(Exception):
    """Base class for all engagement service errors."""


class InvalidEvent(EngagementError):
    """An activity event failed validation and was not recorded."""


class InvalidAction(InvalidEvent):
    """The submitted action is not one of the trackable actions."""

    def __init__(self, action: Any):
        self.action = action
        super().__init__(f"Invalid action: {action!r}")


class NotFound(EngagementError):
    """A referenced user or product could not be resolved."""


class StoreUnavailable(EngagementError):
    """The persistence layer could not be reached."""


class ProviderSendFailure(EngagementError):
    """The email provider rejected or failed to deliver a message."""

    def __init__(self, message: str, details: Any = None):
        self.details = details
        super().__init__(message)


class CampaignAlreadyRunning(EngagementError):
    """A run of the same campaign is already in progress in this process."""


class InvalidTransition(EngagementError):
    """A campaign run attempted a state change the state machine forbids."""
