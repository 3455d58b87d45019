from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tickdata.errors import DecodeError, PersistConflict
from tickdata.ingestion.bi5 import compress
from tickdata.ingestion.dukascopy_client import DukascopyClient
from tickdata.ingestion.fetcher import HourFetcher
from tickdata.ingestion.reconciler import HourReconciler, HourStatus
from tickdata.paths import HistoryPathResolver, PathKind
from tickdata.storage.tick_writer import RawTickWriter, read_tick_file
from tickdata.timestamps import HourWindow


def _window(year, month, day, hour):
    return HourWindow.from_gmt(int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp()))


# Monday 07-Jan-2013 05:00 GMT == 07:00 FXT
TRADING = _window(2013, 1, 7, 5)
# Saturday 05-Jan-2013 12:00 GMT == 14:00 FXT
SATURDAY = _window(2013, 1, 5, 12)


def _build(config, datafeed):
    resolver = HistoryPathResolver(config.data_root, base_url=config.base_url)
    fetcher = HourFetcher(DukascopyClient(transport=datafeed), resolver)
    writer = RawTickWriter(resolver, save_raw=config.save_raw_tick_files, save_compressed=config.save_compressed_tick_files)
    return HourReconciler(config, resolver, fetcher, writer), resolver


def test_missing_hour_is_downloaded_and_persisted(make_config, datafeed, eurusd, hour_payload) -> None:
    reconciler, resolver = _build(make_config(), datafeed)
    datafeed.serve(resolver.resolve(PathKind.REMOTE_URL, eurusd, TRADING.gmt), hour_payload(count=4))

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.UPDATED

    ticks = read_tick_file(resolver.path(PathKind.LOCAL_TICKS_RAW, eurusd, TRADING.fxt))
    assert len(ticks) == 4
    assert ticks[0].bid == 131_000 and ticks[0].ask == 131_003
    # provider caches are not retained by default
    assert not resolver.path(PathKind.PROVIDER_TICKS_COMPRESSED, eurusd, TRADING.gmt).exists()
    assert not resolver.path(PathKind.PROVIDER_TICKS_RAW, eurusd, TRADING.gmt).exists()


def test_existing_local_file_satisfies_hour_without_fetch(make_config, datafeed, eurusd, hour_payload) -> None:
    reconciler, resolver = _build(make_config(), datafeed)
    datafeed.serve(resolver.resolve(PathKind.REMOTE_URL, eurusd, TRADING.gmt), hour_payload())
    reconciler.reconcile(eurusd, TRADING)

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.SATISFIED
    assert len(datafeed.calls) == 1


def test_compressed_local_file_satisfies_hour(make_config, datafeed, eurusd) -> None:
    reconciler, resolver = _build(make_config(save_raw_tick_files=False, save_compressed_tick_files=True), datafeed)
    target = resolver.path(PathKind.LOCAL_TICKS_COMPRESSED, eurusd, TRADING.fxt)
    target.parent.mkdir(parents=True)
    target.write_bytes(compress(b""))

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.SATISFIED
    assert datafeed.calls == []


def test_raw_file_ignored_when_raw_files_are_not_kept(make_config, datafeed, eurusd, hour_payload) -> None:
    reconciler, resolver = _build(make_config(save_raw_tick_files=False, save_compressed_tick_files=True), datafeed)
    raw = resolver.path(PathKind.LOCAL_TICKS_RAW, eurusd, TRADING.fxt)
    raw.parent.mkdir(parents=True)
    raw.write_bytes(b"")
    datafeed.serve(resolver.resolve(PathKind.REMOTE_URL, eurusd, TRADING.gmt), hour_payload())

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.UPDATED
    assert len(read_tick_file(resolver.path(PathKind.LOCAL_TICKS_COMPRESSED, eurusd, TRADING.fxt))) == 3


def test_saturday_hour_is_never_fetched(make_config, datafeed, eurusd) -> None:
    reconciler, resolver = _build(make_config(), datafeed)
    gmt_dir = resolver.path(PathKind.LOCAL_DIR, eurusd, SATURDAY.gmt)
    gmt_dir.mkdir(parents=True)
    resolver.path(PathKind.PROVIDER_TICKS_COMPRESSED, eurusd, SATURDAY.gmt).write_bytes(b"stale")

    assert reconciler.reconcile(eurusd, SATURDAY) is HourStatus.NON_TRADING

    assert datafeed.calls == []
    assert not gmt_dir.exists()
    assert not resolver.path(PathKind.LOCAL_DIR, eurusd, SATURDAY.fxt).exists()


def test_not_found_hour_is_marked_and_not_retried(make_config, datafeed, eurusd) -> None:
    reconciler, resolver = _build(make_config(), datafeed)

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.NOT_FOUND
    assert resolver.path(PathKind.MARKER_NOT_FOUND, eurusd, TRADING.fxt).is_file()
    assert not resolver.path(PathKind.LOCAL_TICKS_RAW, eurusd, TRADING.fxt).exists()

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.NOT_FOUND
    assert len(datafeed.calls) == 1


def test_empty_response_is_marked_and_not_requested_again(make_config, datafeed, eurusd, hour_payload) -> None:
    reconciler, resolver = _build(make_config(), datafeed)
    url = resolver.resolve(PathKind.REMOTE_URL, eurusd, TRADING.gmt)
    marker = resolver.path(PathKind.MARKER_EMPTY, eurusd, TRADING.fxt)
    datafeed.serve(url, b"")

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.EMPTY_RESPONSE
    assert marker.is_file()

    datafeed.serve(url, hour_payload())
    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.EMPTY_RESPONSE
    assert len(datafeed.calls) == 1

    marker.unlink()
    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.UPDATED
    assert not marker.exists()
    assert len(datafeed.calls) == 2


def test_provider_caches_are_preferred_over_download(make_config, datafeed, eurusd, hour_payload) -> None:
    config = make_config(save_compressed_dukascopy_files=True, save_raw_dukascopy_files=True)
    reconciler, resolver = _build(config, datafeed)
    compressed = resolver.path(PathKind.PROVIDER_TICKS_COMPRESSED, eurusd, TRADING.gmt)
    compressed.parent.mkdir(parents=True)
    compressed.write_bytes(hour_payload(count=2))

    assert reconciler.reconcile(eurusd, TRADING) is HourStatus.UPDATED

    assert datafeed.calls == []
    assert compressed.exists()
    assert resolver.path(PathKind.PROVIDER_TICKS_RAW, eurusd, TRADING.gmt).stat().st_size == 2 * 20


def test_downloaded_file_is_cached_when_requested(make_config, datafeed, eurusd, hour_payload) -> None:
    reconciler, resolver = _build(make_config(save_compressed_dukascopy_files=True), datafeed)
    payload = hour_payload()
    datafeed.serve(resolver.resolve(PathKind.REMOTE_URL, eurusd, TRADING.gmt), payload)

    reconciler.reconcile(eurusd, TRADING)

    assert resolver.path(PathKind.PROVIDER_TICKS_COMPRESSED, eurusd, TRADING.gmt).read_bytes() == payload
    assert not resolver.path(PathKind.PROVIDER_TICKS_RAW, eurusd, TRADING.gmt).exists()


def test_corrupt_download_is_fatal(make_config, datafeed, eurusd) -> None:
    reconciler, resolver = _build(make_config(), datafeed)
    datafeed.serve(resolver.resolve(PathKind.REMOTE_URL, eurusd, TRADING.gmt), compress(b"\x00" * 19))

    with pytest.raises(DecodeError):
        reconciler.reconcile(eurusd, TRADING)
    assert not resolver.path(PathKind.LOCAL_TICKS_RAW, eurusd, TRADING.fxt).exists()


def test_conflicting_local_file_is_fatal(make_config, datafeed, eurusd, hour_payload) -> None:
    config = make_config(save_raw_tick_files=False, save_compressed_tick_files=True)
    reconciler, resolver = _build(config, datafeed)
    datafeed.serve(resolver.resolve(PathKind.REMOTE_URL, eurusd, TRADING.gmt), hour_payload())
    writer = RawTickWriter(resolver, save_raw=True, save_compressed=True)
    reconciler.writer = writer
    raw = resolver.path(PathKind.LOCAL_TICKS_RAW, eurusd, TRADING.fxt)
    raw.parent.mkdir(parents=True)
    raw.write_bytes(b"")

    with pytest.raises(PersistConflict):
        reconciler.reconcile(eurusd, TRADING)


def test_progress_logging_by_verbosity(make_config, datafeed, eurusd, caplog) -> None:
    caplog.set_level("INFO", logger="tickdata.ingestion.reconciler")
    reconciler, _ = _build(make_config(verbose=2), datafeed)
    for hour in (5, 6):
        reconciler.reconcile(eurusd, _window(2013, 1, 7, hour))

    day_lines = [record for record in caplog.records if record.getMessage() == "07-Jan-2013"]
    assert len(day_lines) == 1

    caplog.clear()
    reconciler, _ = _build(make_config(verbose=1), datafeed)
    reconciler.reconcile(eurusd, _window(2013, 1, 8, 5))
    messages = [record.getMessage() for record in caplog.records if record.name == "tickdata.ingestion.reconciler"]
    assert messages == ["Jan-2013"]
