"""Exception taxonomy for the job matching pipeline.

Fatal errors abort a run and end up in ``runs.error``; non-fatal ones are
caught where they happen and recorded in the run metadata.
"""

from __future__ import annotations


class JobMatchError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(JobMatchError):
    """Bad or missing input. Raised before a run is created, or when no roles can be derived."""


class ExtractionError(JobMatchError):
    """Résumé file could not be read or produced no text."""


class LLMError(JobMatchError):
    """LLM or embedding call failed at the transport level."""


class LLMParsingError(LLMError):
    """LLM response could not be parsed into the expected JSON shape."""


class ProviderQueryError(JobMatchError):
    """A single provider query failed. Logged and skipped by the aggregation stage."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class BlockDetectedError(JobMatchError):
    """The scraped site answered with a block signal (429, auth wall, captcha)."""


class PersistenceError(JobMatchError):
    """A database read or write failed."""


class DeliveryError(JobMatchError):
    """The results e-mail could not be sent."""


class CryptoError(JobMatchError):
    """Encryption or decryption failed, or the key is misconfigured."""


class TamperDetectedError(CryptoError):
    """Authentication tag did not verify: ciphertext, nonce, tag or key is wrong."""
