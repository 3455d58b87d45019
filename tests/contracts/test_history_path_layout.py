from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:  # pragma: no cover - import guard
    sys.path.insert(0, str(PROJECT_ROOT))

from tickdata.errors import ArgumentError
from tickdata.ingestion.symbols import TickSymbol
from tickdata.paths import HistoryPathResolver, PathKind, get_data_root

EURUSD = TickSymbol(name="EURUSD", instrument_type="forex", provider_name="eurusd", digits=5)
UNMAPPED = TickSymbol(name="LOCAL1", instrument_type="synthetic", provider_name=None, digits=2)


def _ts(year, month, day, hour=0):
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp())


@pytest.fixture()
def resolver(tmp_path):
    return HistoryPathResolver(tmp_path, base_url="http://datafeed.dukascopy.com/datafeed/")


def test_remote_url_uses_zero_based_month(resolver) -> None:
    url = resolver.resolve(PathKind.REMOTE_URL, EURUSD, _ts(2013, 1, 6, 0))
    assert url == "http://datafeed.dukascopy.com/datafeed/EURUSD/2013/00/06/00h_ticks.bi5"
    assert resolver.resolve(PathKind.REMOTE_URL_DATE, time=_ts(2013, 12, 31, 23)) == "2013/11/31"


def test_local_layout_uses_one_based_month(resolver, tmp_path) -> None:
    moment = _ts(2013, 1, 7, 5)
    assert resolver.resolve(PathKind.LOCAL_DIR_DATE, time=moment) == "2013/01/07"
    expected_dir = tmp_path / "history" / "forex" / "EURUSD" / "2013" / "01" / "07"
    assert resolver.path(PathKind.LOCAL_DIR, EURUSD, moment) == expected_dir
    assert resolver.path(PathKind.LOCAL_TICKS_RAW, EURUSD, moment) == expected_dir / "05h_ticks.bin"
    assert resolver.path(PathKind.LOCAL_TICKS_COMPRESSED, EURUSD, moment) == expected_dir / "05h_ticks.rar"
    assert resolver.path(PathKind.MARKER_NOT_FOUND, EURUSD, moment) == expected_dir / "05h_ticks.404"
    assert resolver.path(PathKind.MARKER_EMPTY, EURUSD, moment) == expected_dir / "05h_ticks.na"


def test_provider_caches_do_not_collide_with_local_files(resolver) -> None:
    moment = _ts(2013, 1, 7, 5)
    names = {
        resolver.path(kind, EURUSD, moment).name
        for kind in (
            PathKind.LOCAL_TICKS_RAW,
            PathKind.LOCAL_TICKS_COMPRESSED,
            PathKind.PROVIDER_TICKS_RAW,
            PathKind.PROVIDER_TICKS_COMPRESSED,
            PathKind.MARKER_NOT_FOUND,
            PathKind.MARKER_EMPTY,
        )
    }
    assert names == {
        "05h_ticks.bin",
        "05h_ticks.rar",
        "05h_ticks.dat",
        "05h_ticks.bi5",
        "05h_ticks.404",
        "05h_ticks.na",
    }


def test_history_start_urls(resolver) -> None:
    assert (
        resolver.resolve(PathKind.HISTORY_START_URL, EURUSD)
        == "http://datafeed.dukascopy.com/datafeed/EURUSD/metadata/HistoryStart.bi5"
    )
    assert resolver.resolve(PathKind.HISTORY_START_URL) == "http://datafeed.dukascopy.com/datafeed/metadata/HistoryStart.bi5"


@pytest.mark.parametrize("bad_time", [None, 0, -3600, 1.5, "1357430400", True])
def test_invalid_time_rejected(resolver, bad_time) -> None:
    with pytest.raises(ArgumentError):
        resolver.resolve(PathKind.LOCAL_TICKS_RAW, EURUSD, bad_time)


def test_missing_symbol_rejected(resolver) -> None:
    with pytest.raises(ArgumentError):
        resolver.resolve(PathKind.LOCAL_DIR, None, _ts(2013, 1, 7))


def test_unknown_kind_rejected(resolver) -> None:
    with pytest.raises(ArgumentError):
        resolver.resolve("local_ticks_raw", EURUSD, _ts(2013, 1, 7))


def test_unmapped_symbol_has_no_remote_url(resolver) -> None:
    with pytest.raises(ArgumentError):
        resolver.resolve(PathKind.REMOTE_URL, UNMAPPED, _ts(2013, 1, 7))


def test_cache_is_bounded_and_results_stable(tmp_path) -> None:
    resolver = HistoryPathResolver(tmp_path, cache_size=4)
    first = resolver.resolve(PathKind.REMOTE_URL, EURUSD, _ts(2013, 1, 7))
    for hour in range(10):
        resolver.resolve(PathKind.LOCAL_TICKS_RAW, EURUSD, _ts(2013, 2, 1, hour))
    assert resolver.cache_info() == {"size": 4, "capacity": 4}
    assert resolver.resolve(PathKind.REMOTE_URL, EURUSD, _ts(2013, 1, 7)) == first


def test_same_name_with_other_mapping_resolves_separately(resolver) -> None:
    moment = _ts(2013, 1, 7, 5)
    other = TickSymbol(name="EURUSD", instrument_type="custom", provider_name="eurusd_ecn", digits=5)

    assert resolver.resolve(PathKind.REMOTE_URL, EURUSD, moment).endswith("/EURUSD/2013/00/07/05h_ticks.bi5")
    assert resolver.resolve(PathKind.REMOTE_URL, other, moment).endswith("/EURUSD_ECN/2013/00/07/05h_ticks.bi5")
    assert "/forex/EURUSD/" in resolver.resolve(PathKind.LOCAL_TICKS_RAW, EURUSD, moment)
    assert "/custom/EURUSD/" in resolver.resolve(PathKind.LOCAL_TICKS_RAW, other, moment)


def test_data_root_env_override(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TICKDATA_DATA_ROOT", str(tmp_path / "custom"))
    assert get_data_root() == tmp_path / "custom"
    assert HistoryPathResolver().history_root == tmp_path / "custom" / "history"
