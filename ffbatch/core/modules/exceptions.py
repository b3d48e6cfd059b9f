"""
Exception types for ffbatch.

Most failures in the encoding pipeline are reported through an encoder's
terminal ``Error`` state and its log. Exceptions are reserved for misuse of
the API (starting an encoder that is not pending) and for internal probe
failures that are converted into the Error state at creation time.

All custom exceptions inherit from ``FFBatchError``.
"""


class FFBatchError(Exception):
    """Base class for all custom exceptions in ffbatch."""

    pass


class InvalidStateError(FFBatchError):
    """
    Raised when ``start()`` is called on a leaf encoder that is not pending.

    The encoder's state is left untouched when this is raised.
    """

    def __init__(self, current_state):
        self.current_state = current_state
        super().__init__(
            f"Cannot start encoding when the state is not pending. Current state: {current_state.value}"
        )


class ProbeError(FFBatchError):
    """Raised when ffprobe output does not contain a usable ``format.duration``."""

    pass
