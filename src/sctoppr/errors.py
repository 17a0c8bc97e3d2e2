"""Exception and warning types raised by sctoppr.

Configuration problems are detected before any request is sent. Transport
and parse failures wrap the underlying ``requests``/JSON exception so the
original cause stays available on ``__cause__``.
"""


class SctopprError(Exception):
    """Base class for all sctoppr errors."""


class ConfigurationError(SctopprError, ValueError):
    """Invalid column name, enumerated value, category or bound."""


class TransportError(SctopprError, RuntimeError):
    """The ToppGene API could not be reached or answered with an error."""


class ParseError(SctopprError, ValueError):
    """A ToppGene response did not have the expected shape."""


class EmptyResultWarning(UserWarning):
    """One or more clusters produced no genes or no annotations."""
