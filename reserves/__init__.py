"""reserves package: fetch lending-protocol reserve data, normalize it and save liquidity snapshots per protocol."""

__version__ = "0.1.0"

__all__ = [
    "adapters",
    "aggregator",
    "catalog",
    "chain_reader",
    "config",
    "errors",
    "fetcher",
    "models",
    "normalizer",
    "snapshot",
]
