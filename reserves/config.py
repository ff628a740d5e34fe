"""
Settings for the reserve snapshot pipeline.

Settings come from a YAML file (config/reserves.yaml by default) with a few
environment overrides:

    RPC_URL          overrides rpc.url
    RPC_TIMEOUT      overrides rpc.timeout (seconds)
    SNAPSHOT_ROOT    overrides output.root

Relative paths in the file resolve against the directory of the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from web3 import Web3

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "reserves.yaml"
DEFAULT_RPC_TIMEOUT = 30.0
DEFAULT_CONSUMER = "Input to liquidity scanners / MEV strategies"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ProtocolKind(str, Enum):
    """Provider layouts the adapters know how to decode."""

    AAVE_V3 = "aave_v3"
    RADIANT_V2 = "radiant_v2"


@dataclass(frozen=True)
class ProtocolConfig:
    name: str
    kind: ProtocolKind
    data_provider: str
    registry: str
    label: str = ""
    network: str = "arbitrum"

    @property
    def display_name(self) -> str:
        return self.label or self.name


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    protocols: Dict[str, ProtocolConfig]
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    out_root: Path = Path("data/logs")
    annotated_root: Optional[Path] = None
    consumer: str = DEFAULT_CONSUMER
    metadata_path: Optional[Path] = None
    workers: int = 2
    retries: int = 2
    max_backoff: float = 10.0
    log_level: str = "INFO"
    source: Optional[Path] = field(default=None, compare=False)

    def select(self, names) -> Dict[str, ProtocolConfig]:
        """Return the configured protocols named in `names` (all when empty)."""
        if not names:
            return dict(self.protocols)
        unknown = [n for n in names if n not in self.protocols]
        if unknown:
            raise ConfigurationError(
                f"Unknown protocol(s) {unknown}; configured: {sorted(self.protocols)}"
            )
        return {n: self.protocols[n] for n in names}


# --------- helpers ----------

def _checksum(value: Any, where: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ConfigurationError(f"{where}: invalid address {value!r}")
    return Web3.to_checksum_address(value)


def _number(value: Any, where: str, cast=float, minimum=0):
    try:
        n = cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{where}: expected a number, got {value!r}") from None
    if n < minimum:
        raise ConfigurationError(f"{where}: must be >= {minimum}, got {n}")
    return n


def _resolve_path(value: Optional[str], base: Path) -> Optional[Path]:
    if value in (None, ""):
        return None
    p = Path(str(value)).expanduser()
    return p if p.is_absolute() else base / p


def _log_level(value: Any) -> str:
    level = str(value or "INFO").strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"log_level: expected one of {list(LOG_LEVELS)}, got {value!r}")
    return level


def _section(cfg: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = cfg.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{key}: expected a mapping, got {type(value).__name__}")
    return value


def _parse_protocol(name: str, raw: Any) -> ProtocolConfig:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"protocols.{name}: expected a mapping")
    kind = raw.get("kind")
    try:
        kind = ProtocolKind(kind)
    except ValueError:
        known = [k.value for k in ProtocolKind]
        raise ConfigurationError(
            f"protocols.{name}.kind: unknown provider kind {kind!r} (known: {known})"
        ) from None
    return ProtocolConfig(
        name=name,
        kind=kind,
        data_provider=_checksum(raw.get("data_provider"), f"protocols.{name}.data_provider"),
        registry=_checksum(raw.get("registry"), f"protocols.{name}.registry"),
        label=str(raw.get("label") or ""),
        network=str(raw.get("network") or "arbitrum"),
    )


def settings_from_dict(cfg: Mapping[str, Any], base_dir: Path, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build validated Settings from an already-parsed config mapping."""
    env = os.environ if env is None else env

    rpc = _section(cfg, "rpc")
    output = _section(cfg, "output")
    metadata = _section(cfg, "metadata")
    runner = _section(cfg, "runner")

    rpc_url = str(env.get("RPC_URL") or rpc.get("url") or "").strip()
    if not rpc_url:
        raise ConfigurationError("RPC URL missing: set rpc.url or the RPC_URL env var")
    if not rpc_url.startswith(("http://", "https://")):
        raise ConfigurationError(f"rpc.url must be an http(s) endpoint, got {rpc_url!r}")

    raw_protocols = cfg.get("protocols") or {}
    if not isinstance(raw_protocols, Mapping) or not raw_protocols:
        raise ConfigurationError("No protocols configured under 'protocols'")
    protocols = {str(n): _parse_protocol(str(n), p) for n, p in raw_protocols.items()}

    out_root = _resolve_path(env.get("SNAPSHOT_ROOT") or output.get("root") or "data/logs", base_dir)

    return Settings(
        rpc_url=rpc_url,
        protocols=protocols,
        rpc_timeout=_number(env.get("RPC_TIMEOUT") or rpc.get("timeout", DEFAULT_RPC_TIMEOUT), "rpc.timeout", minimum=0.1),
        out_root=out_root,
        annotated_root=_resolve_path(output.get("annotated_root"), base_dir),
        consumer=str(output.get("consumer") or DEFAULT_CONSUMER),
        metadata_path=_resolve_path(metadata.get("path"), base_dir),
        workers=_number(runner.get("workers", 2), "runner.workers", cast=int, minimum=1),
        retries=_number(runner.get("retries", 2), "runner.retries", cast=int),
        max_backoff=_number(runner.get("max_backoff", 10.0), "runner.max_backoff"),
        log_level=_log_level(cfg.get("log_level")),
    )


def load_settings(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    path = Path(path) if path else DEFAULT_CONFIG_PATH
    try:
        with path.open("r") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(cfg, Mapping):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    settings = settings_from_dict(cfg, path.resolve().parent, env)
    return replace(settings, source=path)
