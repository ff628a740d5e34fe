# snapshot.py
"""
Snapshot artifacts, two per protocol:

    <out_root>/<protocol>ReserveSnapshot.json         bare JSON array (machine form)
    <annotated_root>/<protocol>ReserveSnapshot.jsonc  // header + same JSON (human form)

The list-only variant writes <protocol>ReserveList.json/.jsonc instead.
The machine form holds no timestamp, so unchanged upstream data yields
byte-identical files. Every write replaces the whole file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .config import DEFAULT_CONSUMER
from .errors import SnapshotWriteError
from .models import Reserve, ReserveListSnapshot, Snapshot

logger = logging.getLogger(__name__)

AnySnapshot = Union[Snapshot, ReserveListSnapshot]


def _camel(name: str) -> str:
    head, *rest = name.replace("-", "_").split("_")
    return head[:1].lower() + head[1:] + "".join(p[:1].upper() + p[1:] for p in rest)


@dataclass
class SnapshotLayout:
    out_root: Path = Path("data/logs")
    annotated_root: Optional[Path] = None

    def _stem(self, protocol: str, kind: str) -> str:
        suffix = "ReserveList" if kind == "list" else "ReserveSnapshot"
        return f"{_camel(protocol)}{suffix}"

    def machine_path(self, protocol: str, kind: str = "reserves") -> Path:
        return Path(self.out_root) / f"{self._stem(protocol, kind)}.json"

    def annotated_path(self, protocol: str, kind: str = "reserves") -> Path:
        root = self.annotated_root if self.annotated_root is not None else self.out_root
        return Path(root) / f"{self._stem(protocol, kind)}.jsonc"

    def paths_for(self, snapshot: AnySnapshot) -> Tuple[Path, Path]:
        return (
            self.machine_path(snapshot.protocol, snapshot.kind),
            self.annotated_path(snapshot.protocol, snapshot.kind),
        )


def render_machine(snapshot: AnySnapshot) -> str:
    return json.dumps(snapshot.payload(), indent=2, ensure_ascii=False) + "\n"


def render_annotated(snapshot: AnySnapshot, consumer: str = DEFAULT_CONSUMER) -> str:
    label = snapshot.label or snapshot.protocol
    retrieved = snapshot.retrieved_at.astimezone(timezone.utc).isoformat(timespec="seconds")
    retrieved = retrieved.replace("+00:00", "Z")

    if snapshot.kind == "list":
        lines = [
            f"// {label} reserve token addresses snapshot",
            f"// Protocol: {snapshot.protocol}",
        ]
        if snapshot.network:
            lines.append(f"// Network: {snapshot.network}")
        lines += [
            f"// Retrieved: {retrieved}",
            f"// Reserves: {len(snapshot.addresses)} addresses",
        ]
    else:
        lines = [
            f"// {label} reserve liquidity snapshot",
            f"// Protocol: {snapshot.protocol}",
        ]
        if snapshot.network:
            lines.append(f"// Network: {snapshot.network}")
        lines += [
            f"// Retrieved: {retrieved}",
            f"// Reserves ({len(snapshot.reserves)}): {', '.join(snapshot.labels()) or '-'}",
        ]
        if snapshot.market is not None:
            lines.append(f"// Network base token price (USD): {snapshot.market.network_base_token_price}")
    lines.append(f"// Usage: {consumer}")
    return "\n".join(lines) + "\n" + render_machine(snapshot)


def _replace_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


class SnapshotWriter:

    def __init__(self, consumer: str = DEFAULT_CONSUMER):
        self.consumer = consumer

    def write(self, snapshot: AnySnapshot, machine_path: Path, annotated_path: Path) -> Tuple[Path, Path]:
        machine_path, annotated_path = Path(machine_path), Path(annotated_path)
        try:
            _replace_file(machine_path, render_machine(snapshot))
            _replace_file(annotated_path, render_annotated(snapshot, self.consumer))
        except OSError as e:
            raise SnapshotWriteError(f"{snapshot.protocol}: cannot write snapshot: {e}") from e

        logger.info("%s: wrote %s and %s", snapshot.protocol, machine_path, annotated_path)
        return machine_path, annotated_path


def read_snapshot(path: Path) -> List[Reserve]:
    """Parse a machine-form reserve snapshot back into Reserve entities."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return [Reserve.from_dict(d) for d in data]
