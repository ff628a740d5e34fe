"""Exception types for the reserve snapshot pipeline.

Fatal errors (ConfigurationError, CatalogLoadError) abort a run before any
fetch starts. The rest are raised inside a single protocol pipeline and are
folded into that protocol's report entry by the aggregation runner.
"""


class ReserveSnapshotError(Exception):
    """Base exception for all pipeline errors."""


class ConfigurationError(ReserveSnapshotError):
    """Missing or invalid endpoint, addresses or settings."""


class CatalogLoadError(ReserveSnapshotError):
    """The token metadata source is unreadable or malformed."""


class TransportError(ReserveSnapshotError):
    """Network, timeout or RPC failure talking to the remote node."""


class DecodeError(ReserveSnapshotError):
    """A provider response does not match the expected schema."""


class SnapshotWriteError(ReserveSnapshotError):
    """A snapshot artifact could not be written."""


class PipelineCancelled(ReserveSnapshotError):
    """A protocol pipeline was cancelled between steps."""
