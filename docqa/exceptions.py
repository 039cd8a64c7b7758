"""
Error taxonomy shared by the gateways and pipelines.
"""


class DocQAError(Exception):
    """Base class for errors raised by the service."""


class InvalidRequest(DocQAError):
    """Required input is missing or malformed. Reported to the caller as-is."""


class InvalidInput(InvalidRequest):
    """A gateway was handed input it cannot process (e.g. empty text)."""


class ProviderError(DocQAError):
    """An external service (embeddings, index, cache, LLM) failed or timed out."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
