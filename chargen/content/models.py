"""Schema models for equipment and spell catalog entries."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, MutableMapping, Sequence

from ..rules import DEX_CAPS

__all__ = [
    "Armor",
    "SchemaError",
    "Shield",
    "Spell",
    "Weapon",
    "normalise_name",
]


class SchemaError(ValueError):
    """Raised when catalog data fails validation."""


def normalise_name(value: str) -> str:
    """Canonical lookup form of an item or spell name."""

    return " ".join(str(value).strip().lower().split())


def _coerce_mapping(name: str, value: object) -> MutableMapping[str, object]:
    if isinstance(value, MutableMapping):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    raise SchemaError(f"{name} must be a mapping")


def _coerce_sequence(name: str, value: object) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return value
    raise SchemaError(f"{name} must be a sequence")


def _require_name(kind: str, mapping: Mapping[str, object]) -> str:
    name = mapping.get("name")
    if not name or not str(name).strip():
        raise SchemaError(f"{kind} entry missing name")
    return str(name)


@dataclass
class Weapon:
    """A weapon from the equipment catalog, possibly enriched."""

    name: str
    item_type: str = "Weapon"
    category: str = ""
    range: str = ""
    damage: str = ""
    two_handed: bool = False

    def copy(self) -> "Weapon":
        return replace(self)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "type": self.item_type,
            "category": self.category,
            "range": self.range,
            "damage": self.damage,
            "two_handed": self.two_handed,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "Weapon":
        mapping = _coerce_mapping("weapon", data)
        return cls(
            name=_require_name("weapon", mapping),
            item_type=str(mapping.get("type") or "Weapon"),
            category=str(mapping.get("category") or ""),
            range=str(mapping.get("range") or ""),
            damage=str(mapping.get("damage") or ""),
            two_handed=bool(mapping.get("two_handed", False)),
        )


@dataclass
class Armor:
    """Body armor; ``dex_cap`` decides how much DEX adds to its base AC."""

    name: str
    base_ac: int
    dex_cap: str = "full"
    item_type: str = "Armor"
    category: str = ""

    def __post_init__(self) -> None:
        if self.dex_cap not in DEX_CAPS:
            raise SchemaError(f"Unknown dex cap '{self.dex_cap}' for armor {self.name}")

    def copy(self) -> "Armor":
        return replace(self)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "type": self.item_type,
            "category": self.category,
            "base_ac": self.base_ac,
            "dex_cap": self.dex_cap,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "Armor":
        mapping = _coerce_mapping("armor", data)
        try:
            base_ac = int(mapping.get("base_ac", 0))
        except (TypeError, ValueError) as exc:
            raise SchemaError("armor base_ac must be an integer") from exc
        return cls(
            name=_require_name("armor", mapping),
            base_ac=base_ac,
            dex_cap=str(mapping.get("dex_cap") or "full").lower(),
            item_type=str(mapping.get("type") or "Armor"),
            category=str(mapping.get("category") or ""),
        )


@dataclass
class Shield:
    """A shield; contributes a flat bonus to armor class."""

    name: str
    item_type: str = "Shield"
    category: str = ""

    def copy(self) -> "Shield":
        return replace(self)

    def to_dict(self) -> Dict[str, object]:
        return {"name": self.name, "type": self.item_type, "category": self.category}

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "Shield":
        mapping = _coerce_mapping("shield", data)
        return cls(
            name=_require_name("shield", mapping),
            item_type=str(mapping.get("type") or "Shield"),
            category=str(mapping.get("category") or ""),
        )


@dataclass
class Spell:
    """A spell with the classes allowed to cast it."""

    name: str
    level: int
    classes: tuple[str, ...] = field(default_factory=tuple)
    school: str = ""
    range: str = ""

    def __post_init__(self) -> None:
        self.name = normalise_name(self.name)
        if not 0 <= self.level <= 9:
            raise SchemaError(f"Spell '{self.name}' has invalid level {self.level}")
        self.classes = tuple(self.classes)

    def available_to(self, class_name: str) -> bool:
        wanted = class_name.strip().lower()
        return any(entry.strip().lower() == wanted for entry in self.classes)

    def copy(self) -> "Spell":
        return replace(self)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "level": self.level,
            "classes": list(self.classes),
            "school": self.school,
            "range": self.range,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "Spell":
        mapping = _coerce_mapping("spell", data)
        try:
            level = int(mapping.get("level", 0))
        except (TypeError, ValueError) as exc:
            raise SchemaError("spell level must be an integer") from exc
        classes_raw = mapping.get("classes", ())
        classes: tuple[str, ...] = ()
        if classes_raw:
            classes = tuple(str(entry) for entry in _coerce_sequence("classes", classes_raw))
        return cls(
            name=_require_name("spell", mapping),
            level=level,
            classes=classes,
            school=str(mapping.get("school") or ""),
            range=str(mapping.get("range") or ""),
        )
