# ABOUTME: Exception hierarchy for the climate aggregation engine.
# ABOUTME: Separates configuration, provider, validation, and persistence failures.


class AnalysisError(Exception):
    """Base class for every error raised by the analysis engine."""


class ConfigurationError(AnalysisError):
    """A required credential or setting is missing."""


class ProviderError(AnalysisError):
    """An external data provider failed, timed out, or returned a malformed body."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ValidationError(AnalysisError):
    """Input coordinates are out of range."""


class PersistenceError(AnalysisError):
    """Reading or writing a stored report failed."""
