"""AggregationRunner: isolation, state tracking, retries and cancellation."""

import time
from dataclasses import replace

import pytest

from reserves.aggregator import AggregationReport, AggregationRunner, PipelineState, ProtocolOutcome
from reserves.errors import ConfigurationError, DecodeError, TransportError
from reserves.models import ReserveListSnapshot, Snapshot

from conftest import USDC, WETH, FakeReader


def test_one_protocol_failing_does_not_affect_the_other(make_fetcher, aave_config, radiant_config,
                                                        sample_rows, layout):
    aave = make_fetcher(aave_config, FakeReader(rows=sample_rows))
    radiant = make_fetcher(radiant_config, FakeReader(errors=[TransportError("timeout")]))

    report = AggregationRunner(workers=2).run([aave, radiant])

    assert report["aave"].state == PipelineState.SUCCEEDED
    assert report["radiant"].state == PipelineState.FAILED
    assert report["radiant"].error_kind == "TransportError"
    assert layout.machine_path("aave").exists()
    assert not layout.machine_path("radiant").exists()
    assert report.exit_code() == 0
    assert report.exit_code(strict=True) == 1


def test_success_walks_every_state(make_fetcher, aave_config, sample_rows):
    report = AggregationRunner().run([make_fetcher(aave_config, FakeReader(rows=sample_rows))])

    assert report["aave"].history == [
        PipelineState.PENDING,
        PipelineState.FETCHING,
        PipelineState.NORMALIZING,
        PipelineState.WRITING,
        PipelineState.SUCCEEDED,
    ]


def test_dropped_reserves_are_reported(make_fetcher, aave_config, sample_rows):
    report = AggregationRunner().run([make_fetcher(aave_config, FakeReader(rows=sample_rows))])
    outcome = report["aave"]

    assert outcome.record_count == 2
    assert outcome.dropped_count == 1
    assert "1 dropped" in outcome.describe()
    assert [r.symbol for r in outcome.snapshot.reserves] == ["USDC", "WETH"]


def test_transport_errors_are_retried(make_fetcher, aave_config, sample_rows):
    reader = FakeReader(rows=sample_rows, errors=[TransportError("503"), TransportError("503")])

    report = AggregationRunner().run([make_fetcher(aave_config, reader, retries=2)])

    assert report["aave"].ok
    assert reader.calls == 3


def test_retries_are_bounded(make_fetcher, aave_config):
    reader = FakeReader(errors=[TransportError("down")] * 5)

    report = AggregationRunner().run([make_fetcher(aave_config, reader, retries=2)])

    assert report["aave"].state == PipelineState.FAILED
    assert reader.calls == 3


def test_decode_errors_are_not_retried(make_fetcher, aave_config):
    reader = FakeReader(errors=[DecodeError("bad tuple")])

    report = AggregationRunner().run([make_fetcher(aave_config, reader, retries=3)])

    assert report["aave"].error_kind == "DecodeError"
    assert report["aave"].history[-2] == PipelineState.FETCHING
    assert reader.calls == 1


def test_unexpected_exception_is_folded_into_report(make_fetcher, aave_config, radiant_config, sample_rows):
    reader = FakeReader(errors=[ValueError("boom")])

    report = AggregationRunner().run([
        make_fetcher(aave_config, reader),
        make_fetcher(radiant_config, FakeReader(rows=sample_rows)),
    ])

    assert report["aave"].error_kind == "ValueError"
    assert report.succeeded == ["radiant"]
    assert report.failed == ["aave"]


def test_cancel_during_fetch_writes_nothing(make_fetcher, aave_config, sample_rows, layout):
    runner = AggregationRunner()
    reader = FakeReader(rows=sample_rows, on_call=lambda: runner.cancel())

    report = runner.run([make_fetcher(aave_config, reader)])

    assert report["aave"].state == PipelineState.CANCELLED
    assert report["aave"].history[-2] == PipelineState.FETCHING
    assert not layout.machine_path("aave").exists()
    assert report.exit_code() == 1


def test_cancel_interrupts_retry_backoff(make_fetcher, aave_config):
    runner = AggregationRunner()
    reader = FakeReader(errors=[TransportError("down")] * 3, on_call=lambda: runner.cancel())

    start = time.monotonic()
    report = runner.run([make_fetcher(aave_config, reader, retries=2, max_backoff=30.0)])

    assert report["aave"].state == PipelineState.CANCELLED
    assert reader.calls == 1
    assert time.monotonic() - start < 5


def test_deadline_cancels_slow_and_pending_pipelines(make_fetcher, aave_config, radiant_config, sample_rows, layout):
    slow = FakeReader(rows=sample_rows, on_call=lambda: time.sleep(0.6))
    queued = FakeReader(rows=sample_rows)

    runner = AggregationRunner(workers=1)
    report = runner.run([make_fetcher(aave_config, slow), make_fetcher(radiant_config, queued)], deadline=0.2)

    assert report["aave"].state == PipelineState.CANCELLED
    assert report["radiant"].state == PipelineState.CANCELLED
    assert report["radiant"].history == [PipelineState.PENDING, PipelineState.CANCELLED]
    assert queued.calls == 0
    assert not layout.machine_path("aave").exists()


def test_no_write_mode(make_fetcher, aave_config, sample_rows, layout):
    report = AggregationRunner(write=False).run([make_fetcher(aave_config, FakeReader(rows=sample_rows))])

    assert report["aave"].ok
    assert report["aave"].paths == ()
    assert PipelineState.WRITING not in report["aave"].history
    assert not layout.machine_path("aave").exists()


def test_list_mode(make_fetcher, radiant_config, layout):
    reader = FakeReader(addresses=[USDC, WETH])

    report = AggregationRunner().run([make_fetcher(radiant_config, reader, mode="list")])

    assert report["radiant"].record_count == 2
    assert layout.machine_path("radiant", "list").exists()


def test_duplicate_protocols_rejected(make_fetcher, aave_config):
    fetchers = [make_fetcher(aave_config, FakeReader()), make_fetcher(aave_config, FakeReader())]

    with pytest.raises(ConfigurationError):
        AggregationRunner().run(fetchers)


def test_empty_run():
    report = AggregationRunner().run([])

    assert report.outcomes == {}
    assert report.exit_code() == 1


def test_runner_is_reusable_after_cancel(make_fetcher, aave_config, sample_rows):
    runner = AggregationRunner()
    runner.cancel()

    report = runner.run([make_fetcher(aave_config, FakeReader(rows=sample_rows))])

    assert report["aave"].ok


def test_summary_lines_are_sorted():
    report = AggregationReport(outcomes={
        "radiant": ProtocolOutcome(protocol="radiant", state=PipelineState.FAILED,
                                   error_kind="TransportError", error_message="timeout"),
        "aave": ProtocolOutcome(protocol="aave", state=PipelineState.SUCCEEDED, record_count=3),
    })

    lines = report.summary_lines()

    assert lines[0].startswith("✅ aave: 3 records")
    assert lines[1].startswith("❌ radiant: failed [TransportError] timeout")


@pytest.mark.parametrize("names", [("aave_v3", "aave-v3"), ("aaveV3", "aave_v3"), ("aaveV3", "aavev3")])
def test_protocols_sharing_snapshot_files_are_rejected(make_fetcher, aave_config, sample_rows, layout, names):
    readers = [FakeReader(rows=sample_rows), FakeReader(rows=sample_rows)]
    fetchers = [make_fetcher(replace(aave_config, name=n), r) for n, r in zip(names, readers)]

    with pytest.raises(ConfigurationError, match="would both write"):
        AggregationRunner(workers=2).run(fetchers)

    assert [r.calls for r in readers] == [0, 0]
    assert not layout.out_root.exists()


def test_same_protocol_in_both_modes_has_distinct_files(make_fetcher, aave_config, sample_rows, layout):
    reserves = make_fetcher(aave_config, FakeReader(rows=sample_rows))
    listed = make_fetcher(replace(aave_config, name="aave_list"), FakeReader(addresses=[USDC]), mode="list")

    report = AggregationRunner().run([reserves, listed])

    assert report.all_succeeded
    assert layout.machine_path("aave").exists()
    assert layout.machine_path("aave_list", "list").exists()


def test_outcome_carries_the_snapshot_for_its_mode(make_fetcher, aave_config, radiant_config, sample_rows):
    reserves = make_fetcher(aave_config, FakeReader(rows=sample_rows))
    listed = make_fetcher(radiant_config, FakeReader(addresses=[USDC, WETH]), mode="list")

    report = AggregationRunner(write=False).run([reserves, listed])

    assert isinstance(report["aave"].snapshot, Snapshot)
    assert isinstance(report["radiant"].snapshot, ReserveListSnapshot)
    assert report["radiant"].snapshot.addresses == (USDC, WETH)
