"""Single-slot on-disk cache for the raw catalog response."""

from __future__ import annotations

import json
import os
import uuid
from contextlib import suppress
from pathlib import Path
from typing import Any

from tpmi.errors import CacheIOError, CacheMiss

CATALOG_FILENAME = "third_party_identification.json"
META_FILENAME = "third_party_identification.meta.json"


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".tmp-{path.name}-{uuid.uuid4().hex}")
    try:
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError:
        with suppress(FileNotFoundError):
            tmp_path.unlink()
        raise


class CatalogCacheStore:
    """Last-known-good catalog body stored verbatim, plus fetch metadata."""

    def __init__(self, cache_dir: Path | str = Path("data/tpmi")) -> None:
        self.cache_dir = Path(cache_dir).expanduser()
        self.path = self.cache_dir / CATALOG_FILENAME
        self.meta_path = self.cache_dir / META_FILENAME

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise CacheMiss(f"no cached catalog at {self.path}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise CacheIOError(f"failed reading cached catalog {self.path}: {exc}") from exc

    def write(self, text: str) -> None:
        try:
            _atomic_write_text(self.path, text)
        except OSError as exc:
            raise CacheIOError(f"failed writing cached catalog {self.path}: {exc}") from exc

    def load_meta(self) -> dict[str, Any] | None:
        try:
            payload = json.loads(self.meta_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    def write_meta(self, meta: dict[str, Any]) -> None:
        payload = json.dumps(meta, sort_keys=True, ensure_ascii=True, indent=2) + "\n"
        try:
            _atomic_write_text(self.meta_path, payload)
        except OSError as exc:
            raise CacheIOError(f"failed writing cache metadata {self.meta_path}: {exc}") from exc
