"""Error taxonomy for session handling and message dispatch."""


class AgentError(Exception):
    """Base class for failures contained to a single inbound message."""


class ProvisioningError(AgentError):
    """The wallet provider rejected its configuration or prior state."""


class ReasoningError(AgentError):
    """The reasoner call failed or produced unusable output."""


class DeliveryError(AgentError):
    """A reply could not be delivered to its conversation.

    ``partial`` is set when some of the reply already reached the counterparty
    before the failure.
    """

    def __init__(self, message: str, partial: bool = False) -> None:
        super().__init__(message)
        self.partial = partial


class PersistenceWarning(UserWarning):
    """Wallet state could not be read or written; processing continues."""
