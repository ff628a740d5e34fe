import threading

import pytest

from reserves.errors import PipelineCancelled, TransportError
from reserves.models import ReserveListSnapshot, Snapshot

from conftest import FIXED_TIME, USDC, WETH, FakeReader


def test_invalid_mode_rejected(make_fetcher, aave_config):
    with pytest.raises(ValueError):
        make_fetcher(aave_config, FakeReader(), mode="history")


def test_reserves_mode_builds_snapshot(make_fetcher, aave_config, sample_rows):
    fetcher = make_fetcher(aave_config, FakeReader(rows=sample_rows))

    snapshot, result = fetcher.normalize(fetcher.fetch())

    assert isinstance(snapshot, Snapshot)
    assert snapshot.protocol == "aave"
    assert snapshot.retrieved_at == FIXED_TIME
    assert snapshot.label == "Aave V3"
    assert snapshot.network == "arbitrum"
    assert snapshot.labels() == ["USDC", "WETH"]
    assert result.dropped_count == 1


def test_list_mode_builds_list_snapshot(make_fetcher, radiant_config):
    fetcher = make_fetcher(radiant_config, FakeReader(addresses=[USDC, WETH]), mode="list")

    snapshot, result = fetcher.normalize(fetcher.fetch())

    assert isinstance(snapshot, ReserveListSnapshot)
    assert snapshot.addresses == (USDC, WETH)
    assert result.dropped_count == 0


def test_retry_gives_up_after_configured_attempts(make_fetcher, aave_config):
    reader = FakeReader(errors=[TransportError("503")] * 4)
    fetcher = make_fetcher(aave_config, reader, retries=1)

    with pytest.raises(TransportError):
        fetcher.fetch()
    assert reader.calls == 2


def test_set_cancel_event_stops_backoff(make_fetcher, aave_config):
    cancel = threading.Event()
    cancel.set()
    fetcher = make_fetcher(aave_config, FakeReader(errors=[TransportError("503")]), retries=3, max_backoff=60.0)

    with pytest.raises(PipelineCancelled):
        fetcher.fetch(cancel)


def test_write_uses_layout(make_fetcher, aave_config, sample_rows, layout):
    fetcher = make_fetcher(aave_config, FakeReader(rows=sample_rows))
    snapshot, _ = fetcher.normalize(fetcher.fetch())

    assert fetcher.write(snapshot) == layout.paths_for(snapshot)


@pytest.mark.parametrize("mode", ["reserves", "list"])
def test_target_paths_match_written_paths(make_fetcher, aave_config, sample_rows, layout, mode):
    fetcher = make_fetcher(aave_config, FakeReader(rows=sample_rows, addresses=[USDC]), mode=mode)

    snapshot, _ = fetcher.normalize(fetcher.fetch())

    assert fetcher.target_paths() == layout.paths_for(snapshot)
