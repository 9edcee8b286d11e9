"""Error taxonomy for the photo-to-model pipeline."""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class SessionValidationError(PipelineError):
    """The request is invalid for the session's current state.

    Never retried. ``user_message`` is safe to show in the chat as is.
    """

    def __init__(self, user_message: str) -> None:
        super().__init__(user_message)
        self.user_message = user_message


class TransientRemoteError(PipelineError):
    """A remote job call failed twice in a row (transport or decode)."""


class ConsecutiveFailureError(PipelineError):
    """Polling a remote job failed too many times in a row."""


class JobTimeoutError(PipelineError, TimeoutError):
    """A remote job did not reach a terminal status within its ceiling."""


class StorageError(PipelineError):
    """Packaging, upload or download against blob storage failed."""
