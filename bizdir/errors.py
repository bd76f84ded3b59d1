"""Error types raised across the enrichment pipeline."""

from typing import Optional


class BizdirError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(BizdirError):
    """Raised when configuration values are invalid. Aborts startup."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""


class ValidationError(BizdirError):
    """Malformed or missing caller input. Rejected immediately, never retried."""


class SubmissionError(BizdirError):
    """The Classification Source refused or failed a job submission."""


class TransientPollError(BizdirError):
    """A single status poll failed. The poller logs it and keeps polling."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnrecognizedShape(BizdirError):
    """A classification payload matched none of the known shapes."""

    def __init__(self, keys: list[str]):
        self.keys = keys
        super().__init__(
            "Classification payload has no recognised company/contact layout "
            f"(top-level keys: {', '.join(keys) or 'none'})"
        )


class IllegalTransition(BizdirError):
    """A job state change that the lifecycle does not allow."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Illegal job transition: {current.value} -> {target.value}")


class DuplicateConstraintViolation(BizdirError):
    """The unique identity constraint fired and retries were exhausted."""

    def __init__(self, identity: str, attempts: int):
        self.identity = identity
        self.attempts = attempts
        super().__init__(
            f"Could not settle identity {identity!r} after {attempts} attempts"
        )
