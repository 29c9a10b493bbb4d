"""Error taxonomy shared by the pipeline, the store gateway and the HTTP layer."""


class SessionInsightsError(Exception):
    """Base class for every error raised by this package."""


class TranscriptionError(SessionInsightsError):
    """The speech-to-text provider failed or timed out."""


class SummarizationError(SessionInsightsError):
    """The text-generation provider failed or returned nothing."""


class EmbeddingError(SessionInsightsError):
    """The embedding provider failed or returned a malformed vector."""


class StorageError(SessionInsightsError):
    """A read or write against the session store failed."""


class ValidationError(SessionInsightsError):
    """An upload was rejected before reaching the pipeline."""


class NotFoundError(SessionInsightsError):
    """Raised when a requested session does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class SessionClosedError(SessionInsightsError):
    """A conditional write found the session no longer in the expected state."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is no longer in the expected state")
