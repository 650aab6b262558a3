"""Decode raw catalog text into a `Dataset`."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from tpmi.errors import CatalogFormatError
from tpmi.models import Dataset, GameCatalog, ThirdPartyModInfo


def _parse_game(game: str, payload: Any) -> GameCatalog:
    if not isinstance(payload, dict):
        raise CatalogFormatError(
            f"catalog for {game} must be an object, got {type(payload).__name__}"
        )
    entries: list[tuple[str, ThirdPartyModInfo]] = []
    for key, raw_entry in payload.items():
        try:
            entries.append((key, ThirdPartyModInfo.model_validate(raw_entry)))
        except ValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            reason = first.get("msg", str(exc))
            raise CatalogFormatError(f"invalid entry {game}/{key}: {reason}") from exc
        except RecursionError as exc:
            raise CatalogFormatError(f"entry {game}/{key} is nested too deeply") from exc
    return GameCatalog(entries)


def parse_catalog(text: str) -> Dataset:
    """Parse catalog JSON text.

    Raises `CatalogFormatError` when the text is not JSON or does not match
    `{game: {dlc_folder: entry}}`. Nothing is returned on partial success.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise CatalogFormatError(f"catalog is not valid JSON: {exc}") from exc
    except RecursionError as exc:
        raise CatalogFormatError("catalog nesting is too deep to decode") from exc
    if not isinstance(payload, dict):
        raise CatalogFormatError(
            f"catalog root must be an object, got {type(payload).__name__}"
        )
    return Dataset({str(game): _parse_game(str(game), value) for game, value in payload.items()})
