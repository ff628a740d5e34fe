"""Provider adapters, keyed by the `kind` used in config/reserves.yaml."""
from typing import Dict, Type

from ..chain_reader import ChainReaderClient
from ..config import ProtocolConfig, ProtocolKind
from ..errors import ConfigurationError
from .aave_v3 import AaveV3Adapter
from .base import ReserveAdapter
from .radiant_v2 import RadiantV2Adapter

ADAPTER_REGISTRY: Dict[ProtocolKind, Type[ReserveAdapter]] = {
    ProtocolKind.AAVE_V3: AaveV3Adapter,
    ProtocolKind.RADIANT_V2: RadiantV2Adapter,
    # Aave V3 forks (e.g. SparkLend) reuse kind: aave_v3
}


def build_adapter(reader: ChainReaderClient, config: ProtocolConfig) -> ReserveAdapter:
    try:
        cls = ADAPTER_REGISTRY[ProtocolKind(config.kind)]
    except (KeyError, ValueError):
        raise ConfigurationError(f"No adapter registered for kind {config.kind!r}") from None
    return cls(reader, config)


__all__ = [
    "ADAPTER_REGISTRY",
    "AaveV3Adapter",
    "RadiantV2Adapter",
    "ReserveAdapter",
    "build_adapter",
]
