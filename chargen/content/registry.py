"""Registries for catalog content."""

from __future__ import annotations

from typing import Dict, Generic, Iterable, Iterator, Mapping, Sequence, TypeVar

from .models import Armor, Shield, Spell, Weapon, normalise_name

__all__ = [
    "ArmorRegistry",
    "ShieldRegistry",
    "SpellRegistry",
    "WeaponRegistry",
]

T = TypeVar("T")


class BaseRegistry(Generic[T]):
    """Case-insensitive container for validated catalog entries."""

    kind = "entry"

    def __init__(self, entries: Iterable[T] = ()) -> None:
        self._entries: Dict[str, T] = {}
        self._aliases: Dict[str, str] = {}
        for entry in entries:
            self.register(self._name_of(entry), entry)

    @staticmethod
    def _normalise(value: str) -> str:
        return normalise_name(value)

    @staticmethod
    def _name_of(entry: T) -> str:
        return getattr(entry, "name")

    def register(self, key: str, entry: T, *, aliases: Iterable[str] = (), replace: bool = False) -> None:
        identifier = self._normalise(key)
        if identifier in self._entries and not replace:
            raise ValueError(f"Duplicate {self.kind} '{key}'")
        self._entries[identifier] = entry
        self._aliases[identifier] = identifier
        for alias in aliases:
            self._aliases[self._normalise(alias)] = identifier

    def get(self, name: str) -> T:
        if not name:
            raise KeyError("Name must be provided")
        identifier = self._normalise(name)
        target = self._aliases.get(identifier, identifier)
        try:
            return self._entries[target]
        except KeyError as exc:
            raise KeyError(f"Unknown {self.kind} '{name}'") from exc

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str) or not name:
            return False
        identifier = self._normalise(name)
        return self._aliases.get(identifier, identifier) in self._entries

    def values(self) -> Sequence[T]:
        return tuple(self._entries.values())

    def keys(self) -> Sequence[str]:
        return tuple(self._entries.keys())

    def __iter__(self) -> Iterator[T]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class WeaponRegistry(BaseRegistry[Weapon]):
    kind = "weapon"


class ArmorRegistry(BaseRegistry[Armor]):
    kind = "armor"


class ShieldRegistry(BaseRegistry[Shield]):
    kind = "shield"


class SpellRegistry(BaseRegistry[Spell]):
    """Spells keyed by lowercase name and grouped by spell level."""

    kind = "spell"

    def by_level(self) -> Mapping[int, Sequence[Spell]]:
        grouped: Dict[int, list[Spell]] = {}
        for spell in self:
            grouped.setdefault(spell.level, []).append(spell)
        return {level: tuple(spells) for level, spells in sorted(grouped.items())}

    def for_class(self, class_name: str) -> Sequence[Spell]:
        return tuple(spell for spell in self if spell.available_to(class_name))
