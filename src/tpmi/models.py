"""Catalog records and the immutable in-memory dataset."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from tpmi.games import SUPPORTED_GAMES, normalize_game
from tpmi.util.parsing import is_blank, safe_int

KNOWN_FIELDS = frozenset(
    {
        "modname",
        "modauthor",
        "moddesc",
        "modsite",
        "modulenumber",
        "mountpriority",
        "updatecode",
        "preventimport",
    }
)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(key): _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


class ThirdPartyModInfo(BaseModel):
    """Descriptor for one identifiable DLC mod.

    Fields the service publishes but this package does not interpret are kept
    verbatim in `extras`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    modname: str = ""
    modauthor: str = ""
    moddesc: str = ""
    modsite: str = ""
    modulenumber: int | None = None
    mountpriority: int | None = None
    updatecode: int | None = None
    preventimport: bool = False
    extras: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}))

    @model_validator(mode="before")
    @classmethod
    def _collect_extras(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            raise ValueError(f"entry must be an object, got {type(data).__name__}")
        known: dict[str, Any] = {}
        extras: dict[str, Any] = {}
        for key, value in data.items():
            if key in KNOWN_FIELDS:
                known[key] = value
            elif key == "extras" and isinstance(value, Mapping):
                extras.update({str(name): item for name, item in value.items()})
            else:
                extras[str(key)] = value
        known["extras"] = extras
        return known

    @field_validator("modname", "modauthor", "moddesc", "modsite", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("modulenumber", "mountpriority", "updatecode", mode="before")
    @classmethod
    def _normalized_int(cls, value: Any) -> int | None:
        if is_blank(value):
            return None
        parsed = safe_int(value)
        if parsed is None:
            raise ValueError(f"expected an integer-like value, got {value!r}")
        return parsed

    @field_validator("preventimport", mode="before")
    @classmethod
    def _flag_or_false(cls, value: Any) -> Any:
        return False if is_blank(value) else value

    @field_validator("extras")
    @classmethod
    def _freeze_extras(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    @field_serializer("extras")
    def _thaw_extras(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return _thaw(value)


class GameCatalog(Mapping[str, ThirdPartyModInfo]):
    """Case-insensitive, read-only mapping of DLC folder name to mod info.

    Iteration yields keys with the casing they were stored under.
    """

    __slots__ = ("_entries",)

    def __init__(
        self,
        entries: Mapping[str, ThirdPartyModInfo]
        | Iterable[tuple[str, ThirdPartyModInfo]]
        | None = None,
    ) -> None:
        items = entries.items() if isinstance(entries, Mapping) else (entries or ())
        folded: dict[str, tuple[str, ThirdPartyModInfo]] = {}
        for key, info in items:
            folded[key.casefold()] = (key, info)
        self._entries = folded

    def __getitem__(self, key: str) -> ThirdPartyModInfo:
        if not isinstance(key, str):
            raise KeyError(key)
        return self._entries[key.casefold()][1]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._entries

    def __iter__(self) -> Iterator[str]:
        return (stored for stored, _ in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"GameCatalog({len(self)} entries)"


class Dataset(Mapping[str, GameCatalog]):
    """Read-only catalog-of-catalogs keyed by canonical game id."""

    __slots__ = ("_games",)

    def __init__(self, games: Mapping[str, GameCatalog] | None = None) -> None:
        self._games = {normalize_game(game): catalog for game, catalog in (games or {}).items()}

    def __getitem__(self, game: str) -> GameCatalog:
        return self._games[normalize_game(game)]

    def __contains__(self, game: object) -> bool:
        return isinstance(game, str) and normalize_game(game) in self._games

    def __iter__(self) -> Iterator[str]:
        return iter(self._games)

    def __len__(self) -> int:
        return len(self._games)

    def entry_counts(self) -> dict[str, int]:
        return {game: len(catalog) for game, catalog in self._games.items()}

    def __repr__(self) -> str:
        return f"Dataset({self.entry_counts()})"


def blank_dataset() -> Dataset:
    """Return a dataset with every supported game mapped to an empty catalog."""
    return Dataset({game: GameCatalog() for game in SUPPORTED_GAMES})
