"""Exception types for the command agent."""


class NanocoderError(Exception):
    """Base class for agent errors."""


class ConfigurationError(NanocoderError):
    """Raised for an unknown provider id or a malformed registry entry."""
