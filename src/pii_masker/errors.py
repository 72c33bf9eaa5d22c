"""Exception taxonomy.

Only conditions a caller can act on are exceptions.  Malformed input
(non-string or blank text) and re-anchor misses are handled where they
occur and never raised.
"""

from __future__ import annotations


class MaskerError(Exception):
    """Base class for pii-masker errors."""


class ExtractionUnavailable(MaskerError):
    """The semantic extractor failed, timed out or returned garbage."""


class StreamAborted(MaskerError):
    """Upstream cancelled the stream; the buffer is discarded."""


class StreamClosed(MaskerError):
    """A chunk arrived after the stream was finalized."""
