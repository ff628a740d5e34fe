"""
One protocol's pipeline: fetch -> normalize -> write.

The runner drives the three steps separately so it can track state and
honour cancellation between them.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .adapters import ReserveAdapter
from .errors import PipelineCancelled, TransportError
from .models import MarketMetadata, RawReserveRecord, ReserveListSnapshot, Snapshot
from .normalizer import NormalizationResult, ReserveNormalizer
from .snapshot import SnapshotLayout, SnapshotWriter

logger = logging.getLogger(__name__)

MODES = ("reserves", "list")

FetchResult = Union[Tuple[List[RawReserveRecord], MarketMetadata], List[str]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProtocolFetcher:

    def __init__(
        self,
        adapter: ReserveAdapter,
        normalizer: ReserveNormalizer,
        writer: SnapshotWriter,
        layout: SnapshotLayout,
        mode: str = "reserves",
        retries: int = 2,
        max_backoff: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
        self.adapter = adapter
        self.normalizer = normalizer
        self.writer = writer
        self.layout = layout
        self.mode = mode
        self.retries = retries
        self.max_backoff = max_backoff
        self.clock = clock

    @property
    def protocol(self) -> str:
        return self.adapter.protocol

    def fetch(self, cancel: Optional[threading.Event] = None) -> FetchResult:
        """
        Call the provider, retrying transport failures.

        Backoff is 1s, 2s, 4s... capped at max_backoff. Waiting on `cancel`
        instead of sleeping lets a cancel request cut the backoff short.
        Decode failures are not retried.
        """
        cancel = cancel or threading.Event()
        call = self.adapter.fetch_reserves_list if self.mode == "list" else self.adapter.fetch_raw_reserves

        for attempt in range(self.retries + 1):
            try:
                return call()
            except TransportError as e:
                if attempt >= self.retries:
                    raise
                backoff = min(2 ** attempt, self.max_backoff)
                logger.warning(
                    "%s: %s (attempt %d/%d), retrying in %.1fs",
                    self.protocol, e, attempt + 1, self.retries + 1, backoff,
                )
                if cancel.wait(backoff):
                    raise PipelineCancelled(f"{self.protocol}: cancelled during retry backoff") from e
        raise AssertionError("unreachable")

    def normalize(self, fetched: FetchResult) -> Tuple[Union[Snapshot, ReserveListSnapshot], NormalizationResult]:
        retrieved_at = self.clock()
        if self.mode == "list":
            snapshot = ReserveListSnapshot(
                protocol=self.protocol,
                retrieved_at=retrieved_at,
                addresses=tuple(fetched),
                label=self.adapter.label,
                network=self.adapter.config.network,
            )
            return snapshot, NormalizationResult()

        raw_records, market = fetched
        result = self.normalizer.normalize_all(self.protocol, raw_records)
        snapshot = Snapshot(
            protocol=self.protocol,
            retrieved_at=retrieved_at,
            reserves=tuple(result.reserves),
            label=self.adapter.label,
            network=self.adapter.config.network,
            market=market,
        )
        return snapshot, result

    def target_paths(self) -> Tuple[Path, Path]:
        """Files this fetcher's snapshot will be written to."""
        return (
            self.layout.machine_path(self.protocol, self.mode),
            self.layout.annotated_path(self.protocol, self.mode),
        )

    def write(self, snapshot: Union[Snapshot, ReserveListSnapshot]) -> Tuple[Path, Path]:
        machine_path, annotated_path = self.layout.paths_for(snapshot)
        return self.writer.write(snapshot, machine_path, annotated_path)
