from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from tpmi.cache_store import CatalogCacheStore
from tpmi.errors import CacheIOError, NetworkError, TPMIError
from tpmi.games import SUPPORTED_GAMES
from tpmi.service import TPMIService

URL = "https://catalog.test/thirdpartyidentificationservice"
CATALOG = '{"LE1":{"DLC_Foo":{"modulenumber":"7","mountpriority":100}}}'
OTHER_CATALOG = '{"LE1":{"DLC_Other":{"modulenumber":"9","mountpriority":200}}}'


class FakeFetcher:
    def __init__(self, *responses: str | Exception) -> None:
        self.responses = list(responses)
        self.calls = 0
        self.closed = False

    def fetch(self, url: str) -> str:
        self.calls += 1
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 2, 13, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


class RecordingTelemetry:
    def __init__(self) -> None:
        self.events: list[tuple[BaseException, dict[str, str]]] = []

    def record(self, error: BaseException, context: dict[str, str]) -> None:
        self.events.append((error, context))

    def tiers(self) -> list[str]:
        return [context["Tier"] for _, context in self.events]


def _service(
    store: CatalogCacheStore,
    fetcher: FakeFetcher,
    *,
    clock: FakeClock | None = None,
    telemetry: RecordingTelemetry | None = None,
) -> TPMIService:
    return TPMIService(
        store=store,
        fetcher=fetcher,
        url=URL,
        min_interval=timedelta(hours=1),
        telemetry=telemetry,
        clock=clock or FakeClock(),
    )


def test_network_success_installs_dataset_and_caches_body(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    clock = FakeClock()
    service = _service(store, FakeFetcher(CATALOG), clock=clock)

    result = service.refresh()

    assert result.source == "network"
    assert result.loaded is True
    assert service.loaded is True
    assert store.read() == CATALOG
    assert store.load_meta()["fetched_at_utc"] == "2026-02-13T12:00:00Z"
    assert service.last_success == clock.now

    info = service.lookup("LE1", "dlc_foo")
    assert info is not None
    assert service.find_by_module_number("LE1", 7) == [info]
    assert service.find_by_module_number("LE1", 8) == []
    assert service.find_by_mount_priority("LE1", 100) == [info]


def test_second_refresh_inside_interval_reuses_cache(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    clock = FakeClock()
    fetcher = FakeFetcher(CATALOG)
    service = _service(store, fetcher, clock=clock)

    service.refresh()
    clock.now += timedelta(minutes=30)
    result = service.refresh()

    assert fetcher.calls == 1
    assert result.source == "cache"
    assert service.lookup("LE1", "DLC_FOO") is not None


def test_refresh_after_interval_fetches_again(tmp_path: Path) -> None:
    clock = FakeClock()
    fetcher = FakeFetcher(CATALOG, OTHER_CATALOG)
    service = _service(CatalogCacheStore(tmp_path), fetcher, clock=clock)

    service.refresh()
    clock.now += timedelta(hours=1)
    result = service.refresh()

    assert fetcher.calls == 2
    assert result.source == "network"
    assert service.lookup("LE1", "DLC_Foo") is None
    assert service.lookup("LE1", "dlc_other") is not None


def test_force_immediate_ignores_throttle(tmp_path: Path) -> None:
    fetcher = FakeFetcher(CATALOG, OTHER_CATALOG)
    service = _service(CatalogCacheStore(tmp_path), fetcher)

    service.refresh()
    result = service.refresh(force_immediate=True)

    assert fetcher.calls == 2
    assert result.source == "network"


def test_network_failure_falls_back_to_cached_catalog(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    store.write(CATALOG)
    telemetry = RecordingTelemetry()
    service = _service(store, FakeFetcher(NetworkError("boom")), telemetry=telemetry)

    result = service.refresh()

    assert result.source == "cache"
    assert result.loaded is True
    assert service.lookup("LE1", "DLC_Foo") is not None
    assert service.last_success is None
    assert telemetry.tiers() == ["network"]
    assert telemetry.events[0][1]["Service"] == "Third Party Identification Service"


def test_network_failure_without_cache_returns_blank_default(tmp_path: Path) -> None:
    telemetry = RecordingTelemetry()
    service = _service(
        CatalogCacheStore(tmp_path), FakeFetcher(NetworkError("offline")), telemetry=telemetry
    )

    result = service.refresh()

    assert result.source == "default"
    assert result.loaded is True
    assert tuple(result.dataset) == SUPPORTED_GAMES
    assert telemetry.tiers() == ["network"]
    for game in SUPPORTED_GAMES:
        assert service.lookup(game, "DLC_Foo") is None
        assert service.find_by_module_number(game, 7) == []
        assert service.find_by_mount_priority(game, 100) == []


def test_malformed_cache_and_network_failure_logs_two_failures(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    store = CatalogCacheStore(tmp_path)
    store.write("{this is not json")
    telemetry = RecordingTelemetry()
    service = _service(store, FakeFetcher(NetworkError("offline")), telemetry=telemetry)

    with caplog.at_level(logging.ERROR, logger="tpmi.service"):
        result = service.refresh()

    assert result.source == "default"
    assert result.loaded is True
    assert sorted(result.dataset) == sorted(SUPPORTED_GAMES)
    assert all(len(catalog) == 0 for catalog in result.dataset.values())
    assert telemetry.tiers() == ["network", "cache-fallback"]
    tier_failures = [record for record in caplog.records if "tier failed" in record.getMessage()]
    assert len(tier_failures) == 2


def test_malformed_network_body_falls_back_without_updating_throttle(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    store.write(CATALOG)
    telemetry = RecordingTelemetry()
    service = _service(store, FakeFetcher("<html>maintenance</html>"), telemetry=telemetry)

    result = service.refresh()

    assert result.source == "cache"
    assert service.lookup("LE1", "DLC_Foo") is not None
    assert service.last_success is None
    assert store.load_meta() is None
    assert store.read() == CATALOG
    assert telemetry.tiers() == ["network"]


class _ReadOnlyStore(CatalogCacheStore):
    def write(self, text: str) -> None:
        raise CacheIOError("disk full")


class _UnreadableStore(CatalogCacheStore):
    def read(self) -> str:
        raise CacheIOError("permission denied")


def test_cache_write_failure_does_not_abort_network_tier(tmp_path: Path) -> None:
    telemetry = RecordingTelemetry()
    service = _service(_ReadOnlyStore(tmp_path), FakeFetcher(CATALOG), telemetry=telemetry)

    result = service.refresh()

    assert result.source == "network"
    assert service.lookup("LE1", "DLC_Foo") is not None
    assert telemetry.tiers() == ["cache-write"]


def test_unreadable_cache_is_treated_as_missing(tmp_path: Path) -> None:
    store = _UnreadableStore(tmp_path)
    store.write_meta({"fetched_at_utc": "2026-02-13T11:59:00Z"})
    telemetry = RecordingTelemetry()
    fetcher = FakeFetcher(CATALOG)
    service = _service(store, fetcher, telemetry=telemetry)

    result = service.refresh()

    assert fetcher.calls == 1
    assert result.source == "network"
    assert telemetry.tiers() == ["cache-read"]


def test_missing_cache_is_not_reported_to_telemetry(tmp_path: Path) -> None:
    telemetry = RecordingTelemetry()
    service = _service(CatalogCacheStore(tmp_path), FakeFetcher(CATALOG), telemetry=telemetry)

    service.refresh()

    assert telemetry.events == []


def test_queries_before_first_refresh_are_empty(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    store.write(CATALOG)
    service = _service(store, FakeFetcher(CATALOG))

    assert service.loaded is False
    assert service.dataset is None
    assert service.lookup("LE1", "DLC_Foo") is None
    assert service.try_get_mod_info("LE1", "DLC_Foo") == (False, None)
    assert service.find_by_module_number("LE1", 7) == []
    assert service.find_by_mount_priority("LE1", 100) == []


def test_persisted_fetch_time_throttles_new_instance(tmp_path: Path) -> None:
    clock = FakeClock()
    _service(CatalogCacheStore(tmp_path), FakeFetcher(CATALOG), clock=clock).refresh()

    fetcher = FakeFetcher(OTHER_CATALOG)
    clock.now += timedelta(minutes=5)
    service = _service(CatalogCacheStore(tmp_path), fetcher, clock=clock)
    result = service.refresh()

    assert fetcher.calls == 0
    assert result.source == "cache"
    assert service.last_success == datetime(2026, 2, 13, 12, 0, tzinfo=UTC)
    assert service.lookup("LE1", "DLC_Foo") is not None


def test_failing_telemetry_sink_never_breaks_refresh(tmp_path: Path) -> None:
    class ExplodingTelemetry:
        def record(self, error: BaseException, context: dict[str, str]) -> None:
            raise RuntimeError("upload failed")

    service = TPMIService(
        store=CatalogCacheStore(tmp_path),
        fetcher=FakeFetcher(NetworkError("offline")),
        telemetry=ExplodingTelemetry(),
    )

    assert service.refresh().source == "default"


def test_concurrent_refreshes_are_serialized(tmp_path: Path) -> None:
    state = {"active": 0, "max_active": 0, "calls": 0}
    lock = threading.Lock()

    class SlowFetcher:
        def fetch(self, url: str) -> str:
            with lock:
                state["active"] += 1
                state["calls"] += 1
                state["max_active"] = max(state["max_active"], state["active"])
            time.sleep(0.02)
            with lock:
                state["active"] -= 1
            return CATALOG

    service = TPMIService(store=CatalogCacheStore(tmp_path), fetcher=SlowFetcher())
    threads = [
        threading.Thread(target=service.refresh, kwargs={"force_immediate": True})
        for _ in range(4)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert state["calls"] == 4
    assert state["max_active"] == 1


def test_readers_see_previous_snapshot_while_refresh_in_flight(tmp_path: Path) -> None:
    entered = threading.Event()
    release = threading.Event()

    class BlockingFetcher:
        def __init__(self) -> None:
            self.calls = 0

        def fetch(self, url: str) -> str:
            self.calls += 1
            if self.calls == 1:
                return CATALOG
            entered.set()
            release.wait(timeout=5)
            return OTHER_CATALOG

    service = TPMIService(store=CatalogCacheStore(tmp_path), fetcher=BlockingFetcher())
    service.refresh()
    worker = threading.Thread(target=service.refresh, kwargs={"force_immediate": True})
    worker.start()
    try:
        assert entered.wait(timeout=5)
        assert service.lookup("LE1", "DLC_Foo") is not None
        assert service.lookup("LE1", "DLC_Other") is None
    finally:
        release.set()
        worker.join()

    assert service.lookup("LE1", "DLC_Foo") is None
    assert service.lookup("LE1", "DLC_Other") is not None


def test_shutdown_blocks_refresh_but_keeps_snapshot(tmp_path: Path) -> None:
    fetcher = FakeFetcher(CATALOG)
    service = TPMIService(
        store=CatalogCacheStore(tmp_path), fetcher=fetcher, owns_fetcher=True
    )
    service.refresh()

    service.shutdown()
    service.shutdown()

    assert fetcher.closed is True
    assert service.lookup("LE1", "DLC_Foo") is not None
    with pytest.raises(TPMIError, match="shut down"):
        service.refresh()


def test_status_reports_source_and_counts(tmp_path: Path) -> None:
    service = _service(CatalogCacheStore(tmp_path), FakeFetcher(CATALOG))
    assert service.status() == {
        "loaded": False,
        "source": None,
        "last_fetch_utc": None,
        "games": {},
    }

    service.refresh()

    assert service.status() == {
        "loaded": True,
        "source": "network",
        "last_fetch_utc": "2026-02-13T12:00:00Z",
        "games": {"LE1": 1},
    }


DEEP_BODY = '{"LE1":{"DLC_Foo":{"x":' + "[" * 200000 + "]" * 200000 + "}}}"


def test_deeply_nested_cache_body_falls_back_to_default(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    store.write(DEEP_BODY)
    telemetry = RecordingTelemetry()
    service = _service(store, FakeFetcher(NetworkError("offline")), telemetry=telemetry)

    result = service.refresh()

    assert result.source == "default"
    assert service.loaded is True
    assert telemetry.tiers() == ["network", "cache-fallback"]


def test_deeply_nested_network_body_falls_back_to_cache(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    store.write(CATALOG)
    telemetry = RecordingTelemetry()
    service = _service(store, FakeFetcher(DEEP_BODY), telemetry=telemetry)

    result = service.refresh()

    assert result.source == "cache"
    assert service.loaded is True
    assert service.lookup("LE1", "DLC_Foo") is not None
    assert store.read() == CATALOG
    assert telemetry.tiers() == ["network"]


def test_malformed_forced_fetch_keeps_good_cache_for_later_refreshes(tmp_path: Path) -> None:
    store = CatalogCacheStore(tmp_path)
    clock = FakeClock()
    fetcher = FakeFetcher(CATALOG, "<html>oops</html>")
    service = _service(store, fetcher, clock=clock)

    assert service.refresh().source == "network"
    assert service.refresh(force_immediate=True).source == "cache"
    clock.now += timedelta(minutes=5)
    result = service.refresh()

    assert fetcher.calls == 2
    assert result.source == "cache"
    assert store.read() == CATALOG
    assert service.lookup("LE1", "DLC_Foo") is not None
