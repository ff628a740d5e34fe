"""
Run several protocol pipelines in parallel and collect one report.

Each pipeline moves PENDING -> FETCHING -> NORMALIZING -> WRITING -> SUCCEEDED,
or ends in FAILED / CANCELLED. A failure in one protocol never reaches the
others or the caller; it becomes that protocol's report entry.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import ConfigurationError, PipelineCancelled
from .fetcher import ProtocolFetcher
from .models import ReserveListSnapshot, Snapshot

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    WRITING = "writing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ProtocolOutcome:
    protocol: str
    state: PipelineState = PipelineState.PENDING
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.PENDING])
    record_count: int = 0
    dropped: List[str] = field(default_factory=list)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    elapsed: float = 0.0
    paths: Tuple[Path, ...] = ()
    snapshot: Optional[Union[Snapshot, ReserveListSnapshot]] = None

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.SUCCEEDED

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)

    def describe(self) -> str:
        if self.ok:
            line = f"✅ {self.protocol}: {self.record_count} records written, {self.dropped_count} dropped ({self.elapsed:.2f}s)"
            return line
        mark = "⏹" if self.state == PipelineState.CANCELLED else "❌"
        return f"{mark} {self.protocol}: {self.state.value} [{self.error_kind}] {self.error_message} ({self.elapsed:.2f}s)"


@dataclass
class AggregationReport:
    outcomes: Dict[str, ProtocolOutcome] = field(default_factory=dict)
    elapsed: float = 0.0

    def __getitem__(self, protocol: str) -> ProtocolOutcome:
        return self.outcomes[protocol]

    @property
    def succeeded(self) -> List[str]:
        return sorted(p for p, o in self.outcomes.items() if o.ok)

    @property
    def failed(self) -> List[str]:
        return sorted(p for p, o in self.outcomes.items() if not o.ok)

    @property
    def any_succeeded(self) -> bool:
        return bool(self.succeeded)

    @property
    def all_succeeded(self) -> bool:
        return bool(self.outcomes) and not self.failed

    def exit_code(self, strict: bool = False) -> int:
        """0 if at least one protocol succeeded (every one when strict), else 1."""
        ok = self.all_succeeded if strict else self.any_succeeded
        return 0 if ok else 1

    def summary_lines(self) -> List[str]:
        return [self.outcomes[p].describe() for p in sorted(self.outcomes)]


def _check_distinct_targets(fetchers: List[ProtocolFetcher]) -> None:
    # case-folded; some filesystems ignore case
    owners: Dict[str, str] = {}
    for f in fetchers:
        for path in f.target_paths():
            key = str(path).lower()
            other = owners.setdefault(key, f.protocol)
            if other != f.protocol:
                raise ConfigurationError(
                    f"Protocols {other!r} and {f.protocol!r} would both write {path}; rename one of them"
                )


class AggregationRunner:

    def __init__(self, workers: int = 2, write: bool = True):
        self.workers = max(1, int(workers))
        self.write = write
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Ask running pipelines to stop at their next step boundary."""
        self._cancel.set()

    def _checkpoint(self, outcome: ProtocolOutcome) -> None:
        if self._cancel.is_set():
            raise PipelineCancelled(f"{outcome.protocol}: cancelled before {outcome.state.value} finished")

    def run_pipeline(self, fetcher: ProtocolFetcher) -> ProtocolOutcome:
        outcome = ProtocolOutcome(protocol=fetcher.protocol)
        start = time.monotonic()
        try:
            self._checkpoint(outcome)
            outcome.advance(PipelineState.FETCHING)
            fetched = fetcher.fetch(self._cancel)

            self._checkpoint(outcome)
            outcome.advance(PipelineState.NORMALIZING)
            snapshot, result = fetcher.normalize(fetched)
            outcome.snapshot = snapshot
            outcome.record_count = len(snapshot.payload())
            outcome.dropped = list(result.dropped)

            if self.write:
                self._checkpoint(outcome)
                outcome.advance(PipelineState.WRITING)
                outcome.paths = tuple(fetcher.write(snapshot))

            outcome.advance(PipelineState.SUCCEEDED)
        except PipelineCancelled as e:
            outcome.error_kind = type(e).__name__
            outcome.error_message = str(e)
            outcome.advance(PipelineState.CANCELLED)
            logger.warning("%s", e)
        except Exception as e:
            outcome.error_kind = type(e).__name__
            outcome.error_message = str(e)
            outcome.advance(PipelineState.FAILED)
            logger.error("%s: failed while %s: %s", fetcher.protocol, outcome.history[-2].value, e)
        finally:
            outcome.elapsed = time.monotonic() - start
        return outcome

    def run(self, fetchers: Iterable[ProtocolFetcher], deadline: Optional[float] = None) -> AggregationReport:
        """
        Run every fetcher and return a report keyed by protocol name.

        `deadline` (seconds) bounds the whole run: once it passes, pipelines
        still running are cancelled at their next step boundary. Snapshots
        already written stay on disk.
        """
        fetchers = list(fetchers)
        names = [f.protocol for f in fetchers]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ConfigurationError(f"Protocol(s) configured more than once: {dupes}")
        _check_distinct_targets(fetchers)

        self._cancel = threading.Event()
        report = AggregationReport()
        start = time.monotonic()
        if not fetchers:
            return report

        with ThreadPoolExecutor(max_workers=min(self.workers, len(fetchers))) as pool:
            futures = {pool.submit(self.run_pipeline, f): f.protocol for f in fetchers}
            try:
                for fut in as_completed(futures, timeout=deadline):
                    report.outcomes[futures[fut]] = fut.result()
            except FuturesTimeout:
                logger.warning("Deadline of %.1fs passed; cancelling unfinished pipelines", deadline)
                self.cancel()
                running = []
                for fut, protocol in futures.items():
                    if protocol in report.outcomes:
                        continue
                    # Not yet started: never runs, so report it directly.
                    if fut.cancel():
                        report.outcomes[protocol] = ProtocolOutcome(
                            protocol=protocol,
                            state=PipelineState.CANCELLED,
                            history=[PipelineState.PENDING, PipelineState.CANCELLED],
                            error_kind=PipelineCancelled.__name__,
                            error_message=f"{protocol}: deadline passed before start",
                        )
                    else:
                        running.append((fut, protocol))
                for fut, protocol in running:
                    report.outcomes[protocol] = fut.result()

        report.elapsed = time.monotonic() - start
        return report
