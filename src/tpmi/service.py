"""Catalog service: tiered refresh plus queries over the installed snapshot.

Refresh walks four tiers in a fixed order and settles on the first that
yields a dataset:

1. read the cached catalog text (not parsed yet);
2. when allowed by the throttle, fetch from the network, parse, and re-cache;
3. parse the previously cached text;
4. fall back to a blank dataset with every supported game present.

Failures at each tier are logged and forwarded to telemetry, never raised.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from tpmi import index
from tpmi.cache_store import CatalogCacheStore
from tpmi.errors import CacheIOError, CacheMiss, CatalogFormatError, NetworkError, TPMIError
from tpmi.fetcher import CatalogFetcher
from tpmi.models import Dataset, ThirdPartyModInfo, blank_dataset
from tpmi.outcome import ErrorKind, TierOutcome
from tpmi.parser import parse_catalog
from tpmi.runtime_config import DEFAULT_CATALOG_URL
from tpmi.settings import Settings
from tpmi.telemetry import NullTelemetry, TelemetrySink, emit
from tpmi.throttle import can_fetch_now
from tpmi.time_utils import iso_z, parse_iso_z, utc_now

logger = logging.getLogger(__name__)

SERVICE_NAME = "Third Party Identification Service"

SOURCE_NETWORK = "network"
SOURCE_CACHE = "cache"
SOURCE_DEFAULT = "default"


class Fetcher(Protocol):
    def fetch(self, url: str) -> str: ...


@dataclass(frozen=True)
class RefreshResult:
    """Dataset produced by one refresh and the tier that supplied it."""

    dataset: Dataset
    loaded: bool
    source: str


@dataclass(frozen=True)
class _Snapshot:
    dataset: Dataset | None = None
    loaded: bool = False
    source: str | None = None


class TPMIService:
    """Owns the installed catalog snapshot and its refresh lifecycle."""

    def __init__(
        self,
        *,
        store: CatalogCacheStore,
        fetcher: Fetcher,
        url: str = DEFAULT_CATALOG_URL,
        min_interval: timedelta = timedelta(hours=1),
        telemetry: TelemetrySink | None = None,
        clock: Callable[[], datetime] = utc_now,
        owns_fetcher: bool = False,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.url = url
        self.min_interval = min_interval
        self.telemetry: TelemetrySink = telemetry or NullTelemetry()
        self._clock = clock
        self._owns_fetcher = owns_fetcher
        self._refresh_lock = threading.Lock()
        self._snapshot = _Snapshot()
        self._closed = False
        self._last_success = self._load_last_success()

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        store: CatalogCacheStore | None = None,
        fetcher: Fetcher | None = None,
        telemetry: TelemetrySink | None = None,
    ) -> TPMIService:
        """Build a service from settings; the default fetcher is owned and closed on shutdown."""
        resolved = settings or Settings()
        return cls(
            store=store or CatalogCacheStore(resolved.cache_path),
            fetcher=fetcher or CatalogFetcher(timeout_s=resolved.fetch_timeout_s),
            url=resolved.catalog_url,
            min_interval=resolved.min_fetch_interval,
            telemetry=telemetry,
            owns_fetcher=fetcher is None,
        )

    def __enter__(self) -> TPMIService:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    @property
    def loaded(self) -> bool:
        return self._snapshot.loaded

    @property
    def dataset(self) -> Dataset | None:
        return self._snapshot.dataset

    @property
    def last_success(self) -> datetime | None:
        return self._last_success

    def shutdown(self) -> None:
        """Stop accepting refreshes; queries keep serving the last snapshot."""
        with self._refresh_lock:
            if self._closed:
                return
            self._closed = True
            close = getattr(self.fetcher, "close", None)
            if self._owns_fetcher and callable(close):
                close()

    # Refresh

    def refresh(self, force_immediate: bool = False) -> RefreshResult:
        """Run the tiered refresh and install its dataset.

        Concurrent callers are serialized; readers keep seeing the previous
        snapshot until the new one is installed.
        """
        with self._refresh_lock:
            if self._closed:
                raise TPMIError("catalog service has been shut down")
            result = self._run_tiers(force_immediate)
            self._snapshot = _Snapshot(dataset=result.dataset, loaded=True, source=result.source)
        logger.info(
            "third party identification catalog loaded from %s (%d games, %d entries)",
            result.source,
            len(result.dataset),
            sum(result.dataset.entry_counts().values()),
        )
        return result

    def _run_tiers(self, force_immediate: bool) -> RefreshResult:
        cached = self._read_cache()
        cached_text = cached.value if cached.ok else None

        should_fetch = (
            force_immediate
            or cached_text is None
            or can_fetch_now(self._last_success, self._clock(), self.min_interval)
        )
        if should_fetch:
            fetched = self._fetch_and_parse()
            if fetched.ok and fetched.value is not None:
                return RefreshResult(dataset=fetched.value, loaded=True, source=SOURCE_NETWORK)
        else:
            logger.debug(
                "skipping catalog fetch; last success %s is within %s",
                self._last_success,
                self.min_interval,
            )

        if cached_text is not None:
            parsed = self._parse(cached_text, tier="cache-fallback")
            if parsed.ok and parsed.value is not None:
                if should_fetch:
                    logger.warning("using cached third party identification catalog instead")
                return RefreshResult(dataset=parsed.value, loaded=True, source=SOURCE_CACHE)

        logger.error(
            "unable to load third party identification catalog from network or cache; "
            "returning a blank copy"
        )
        return RefreshResult(dataset=blank_dataset(), loaded=True, source=SOURCE_DEFAULT)

    def _read_cache(self) -> TierOutcome[str]:
        try:
            return TierOutcome.success(self.store.read())
        except (CacheMiss, CacheIOError) as exc:
            outcome: TierOutcome[str] = TierOutcome.failure(exc)
        if outcome.kind is ErrorKind.NOT_FOUND:
            logger.info("no cached third party identification catalog: %s", outcome.error)
        else:
            self._report(
                outcome, tier="cache-read", error_type="Error reading cached online content"
            )
        return outcome

    def _fetch_and_parse(self) -> TierOutcome[Dataset]:
        try:
            text = self.fetcher.fetch(self.url)
        except NetworkError as exc:
            outcome: TierOutcome[Dataset] = TierOutcome.failure(exc)
            self._report(outcome, tier="network", error_type="Error fetching online content")
            return outcome

        parsed = self._parse(text, tier="network")
        if not parsed.ok:
            return parsed

        # Only bodies that parse replace the cached catalog.
        try:
            self.store.write(text)
        except CacheIOError as exc:
            self._report(
                TierOutcome.failure(exc),
                tier="cache-write",
                error_type="Error writing cached online content",
            )
        self._mark_fetched(len(text))
        return parsed

    def _parse(self, text: str, *, tier: str) -> TierOutcome[Dataset]:
        try:
            return TierOutcome.success(parse_catalog(text))
        except CatalogFormatError as exc:
            outcome: TierOutcome[Dataset] = TierOutcome.failure(exc)
        self._report(outcome, tier=tier, error_type="Error parsing online content")
        return outcome

    def _report(self, outcome: TierOutcome[Any], *, tier: str, error_type: str) -> None:
        error = outcome.error
        if error is None:
            return
        logger.error("%s tier failed (%s): %s", tier, outcome.kind, error)
        emit(
            self.telemetry,
            error,
            {
                "Error type": error_type,
                "Service": SERVICE_NAME,
                "Tier": tier,
                "Message": str(error),
            },
        )

    def _load_last_success(self) -> datetime | None:
        meta = self.store.load_meta() or {}
        fetched_at = meta.get("fetched_at_utc")
        if not isinstance(fetched_at, str):
            return None
        return parse_iso_z(fetched_at)

    def _mark_fetched(self, size: int) -> None:
        now = self._clock()
        self._last_success = now
        try:
            self.store.write_meta({"fetched_at_utc": iso_z(now), "url": self.url, "bytes": size})
        except CacheIOError as exc:
            logger.warning("failed to persist catalog fetch time: %s", exc)

    # Queries

    def lookup(self, game: str, key: str) -> ThirdPartyModInfo | None:
        """Return info for a DLC folder, or None when unknown or not yet loaded."""
        snapshot = self._snapshot
        if not snapshot.loaded:
            return None
        return index.lookup(snapshot.dataset, game, key)

    def try_get_mod_info(self, game: str, key: str) -> tuple[bool, ThirdPartyModInfo | None]:
        info = self.lookup(game, key)
        return info is not None, info

    def find_by_module_number(self, game: str, number: Any) -> list[ThirdPartyModInfo]:
        snapshot = self._snapshot
        if not snapshot.loaded:
            return []
        return index.find_by_module_number(snapshot.dataset, game, number)

    def find_by_mount_priority(self, game: str, priority: Any) -> list[ThirdPartyModInfo]:
        snapshot = self._snapshot
        if not snapshot.loaded:
            return []
        return index.find_by_mount_priority(snapshot.dataset, game, priority)

    def status(self) -> dict[str, Any]:
        snapshot = self._snapshot
        return {
            "loaded": snapshot.loaded,
            "source": snapshot.source,
            "last_fetch_utc": iso_z(self._last_success) if self._last_success else None,
            "games": snapshot.dataset.entry_counts() if snapshot.dataset is not None else {},
        }
