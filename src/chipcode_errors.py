class CodeError(Exception):
    """Base class for session code failures."""


class InvalidInput(CodeError, ValueError):
    """Buffer is too short (or otherwise unusable) to carry an expiration."""


class OutOfRange(CodeError, ValueError):
    """Expiration minutes do not fit in the 30-bit encoding."""


class GenerationExhausted(CodeError, RuntimeError):
    """No candidate passed validation within the configured number of attempts."""
