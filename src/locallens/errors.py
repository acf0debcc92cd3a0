"""Exceptions raised while composing the lens.

The running lens never raises these to its caller; remote and device failures
are converted to benign outcomes where they happen.
"""


class LocalLensError(Exception):
    """Base error for LocalLens."""


class ProviderError(LocalLensError):
    """A remote provider could not be configured."""


class SourceUnavailableError(LocalLensError):
    """A capture or location device could not be opened."""
