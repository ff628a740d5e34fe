"""Static token metadata: address -> symbol / decimals.

The backing file is a mapping keyed by token address, in YAML or JSON:

    "0xaf88d065e77c8cC2239327C5EDb3A432268e5831":
      symbol: USDC
      decimals: 6

Keys are lower-cased on load so lookups are case-insensitive.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

import yaml
from eth_utils import is_hex_address

from .errors import CatalogLoadError


@dataclass(frozen=True)
class TokenMetadata:
    address: str
    symbol: Optional[str]
    decimals: Optional[int]


class TokenMetadataCatalog:
    """Read-only after construction; safe to share across worker threads."""

    def __init__(self, entries: Optional[Dict[str, TokenMetadata]] = None):
        self._entries: Dict[str, TokenMetadata] = {
            str(k).lower(): v for k, v in (entries or {}).items()
        }

    @classmethod
    def empty(cls) -> "TokenMetadataCatalog":
        return cls()

    @classmethod
    def from_mapping(cls, raw, source: str = "<mapping>") -> "TokenMetadataCatalog":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise CatalogLoadError(f"{source}: expected a mapping of address -> metadata")

        entries: Dict[str, TokenMetadata] = {}
        for addr, meta in raw.items():
            addr = str(addr)
            if not is_hex_address(addr):
                raise CatalogLoadError(f"{source}: invalid token address {addr!r}")
            if not isinstance(meta, Mapping):
                raise CatalogLoadError(f"{source}: entry for {addr} must be a mapping")

            symbol = meta.get("symbol")
            if symbol is not None and (not isinstance(symbol, str) or not symbol.strip()):
                raise CatalogLoadError(f"{source}: bad symbol for {addr}: {symbol!r}")

            decimals = meta.get("decimals")
            if decimals is not None:
                # bool is an int subclass; reject it explicitly
                if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= 255:
                    raise CatalogLoadError(f"{source}: decimals for {addr} must be 0..255, got {decimals!r}")

            if symbol is None and decimals is None:
                raise CatalogLoadError(f"{source}: entry for {addr} has neither symbol nor decimals")

            key = addr.lower()
            if key in entries:
                raise CatalogLoadError(f"{source}: duplicate entry for {addr}")
            entries[key] = TokenMetadata(
                address=addr,
                symbol=symbol.strip() if symbol else None,
                decimals=decimals,
            )
        return cls(entries)

    @classmethod
    def load(cls, path: Optional[Path]) -> "TokenMetadataCatalog":
        """Load a catalog file; no path means an empty catalog."""
        if path is None:
            return cls()
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise CatalogLoadError(f"Cannot read token metadata {path}: {e}") from e

        try:
            if path.suffix.lower() == ".json":
                raw = json.loads(text) if text.strip() else None
            else:
                raw = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise CatalogLoadError(f"Malformed token metadata {path}: {e}") from e

        return cls.from_mapping(raw, source=str(path))

    def resolve(self, address: Optional[str]) -> Optional[TokenMetadata]:
        if not address:
            return None
        return self._entries.get(str(address).lower())

    def __contains__(self, address) -> bool:
        return self.resolve(address) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TokenMetadata]:
        return iter(self._entries.values())
