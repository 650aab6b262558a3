"""Read-only queries over an installed `Dataset`."""

from __future__ import annotations

from typing import Any

from tpmi.models import Dataset, GameCatalog, ThirdPartyModInfo
from tpmi.util.parsing import safe_int


def _catalog(dataset: Dataset | None, game: str) -> GameCatalog | None:
    if dataset is None:
        return None
    return dataset.get(game)


def lookup(dataset: Dataset | None, game: str, key: str) -> ThirdPartyModInfo | None:
    """Return the entry stored under `key` (case-insensitive), or None."""
    catalog = _catalog(dataset, game)
    if catalog is None:
        return None
    return catalog.get(key)


def find_by_module_number(
    dataset: Dataset | None, game: str, number: Any
) -> list[ThirdPartyModInfo]:
    """Return entries whose normalized module number equals `number`."""
    catalog = _catalog(dataset, game)
    wanted = safe_int(number)
    if catalog is None or wanted is None:
        return []
    return [info for info in catalog.values() if info.modulenumber == wanted]


def find_by_mount_priority(
    dataset: Dataset | None, game: str, priority: Any
) -> list[ThirdPartyModInfo]:
    """Return entries whose mount priority equals `priority`."""
    catalog = _catalog(dataset, game)
    wanted = safe_int(priority)
    if catalog is None or wanted is None:
        return []
    return [info for info in catalog.values() if info.mountpriority == wanted]
