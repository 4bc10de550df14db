"""Exception hierarchy for LLM operations."""


class LLMError(Exception):
    """Base exception for LLM operations."""

    pass


class LLMTimeoutError(LLMError):
    """LLM request timed out."""

    pass


class LLMEmptyResponseError(LLMError):
    """The model returned no content blocks at all."""

    pass


class LLMStopError(LLMError):
    """The model finished with an explicit error stop reason."""

    pass
