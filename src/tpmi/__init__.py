"""Third-party mod identification catalog: cached fetch plus case-insensitive queries."""

from tpmi.cache_store import CatalogCacheStore
from tpmi.errors import CacheIOError, CacheMiss, CatalogFormatError, NetworkError, TPMIError
from tpmi.fetcher import CatalogFetcher
from tpmi.games import SUPPORTED_GAMES
from tpmi.models import Dataset, GameCatalog, ThirdPartyModInfo, blank_dataset
from tpmi.parser import parse_catalog
from tpmi.service import RefreshResult, TPMIService
from tpmi.settings import Settings
from tpmi.throttle import can_fetch_now

__all__ = [
    "CacheIOError",
    "CacheMiss",
    "CatalogCacheStore",
    "CatalogFetcher",
    "CatalogFormatError",
    "Dataset",
    "GameCatalog",
    "NetworkError",
    "RefreshResult",
    "SUPPORTED_GAMES",
    "Settings",
    "TPMIError",
    "TPMIService",
    "ThirdPartyModInfo",
    "blank_dataset",
    "can_fetch_now",
    "parse_catalog",
]
