"""Static rule tables for the fifth-edition character generator.

Races, classes, backgrounds, armor and spell slot progressions are read from
the YAML files in ``chargen/srd`` once at import time and exposed as
read-only mappings.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, MutableMapping, Optional, Sequence

import yaml

ABILITY_NAMES: tuple[str, ...] = ("STR", "DEX", "CON", "INT", "WIS", "CHA")
ABILITY_FULL_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "STR": "strength",
        "DEX": "dexterity",
        "CON": "constitution",
        "INT": "intelligence",
        "WIS": "wisdom",
        "CHA": "charisma",
    }
)

SKILLS: Mapping[str, str] = MappingProxyType(
    {
        "Acrobatics": "DEX",
        "Animal Handling": "WIS",
        "Arcana": "INT",
        "Athletics": "STR",
        "Deception": "CHA",
        "History": "INT",
        "Insight": "WIS",
        "Intimidation": "CHA",
        "Investigation": "INT",
        "Medicine": "WIS",
        "Nature": "INT",
        "Perception": "WIS",
        "Performance": "CHA",
        "Persuasion": "CHA",
        "Religion": "INT",
        "Sleight of Hand": "DEX",
        "Stealth": "DEX",
        "Survival": "WIS",
    }
)
SKILL_NAMES: tuple[str, ...] = tuple(sorted(SKILLS))
_SKILLS_BY_LOWER: Mapping[str, str] = {skill.lower(): skill for skill in SKILLS}

DEX_CAPS: tuple[str, ...] = ("full", "limited", "none")
LIMITED_DEX_MAX = 2

_SRD_PATH = Path(__file__).with_name("srd")


class SRDLoadError(RuntimeError):
    """Raised when SRD data fails validation."""


class CasterKind(str, enum.Enum):
    """How a class gains access to its spells."""

    NONE = "none"
    LEARNED = "learned"
    PREPARED = "prepared"


@dataclass(frozen=True)
class Race:
    key: str
    name: str
    ability_bonuses: Mapping[str, int]
    skill: Optional[str] = None


@dataclass(frozen=True)
class CharacterClass:
    key: str
    caster_kind: CasterKind = CasterKind.NONE
    spellcasting_ability: Optional[str] = None
    hit_die: int = 6
    hit_die_average: int = 4
    slot_progression: str = "none"
    cantrip_progression: str = "none"
    unarmored_defense: Optional[str] = None

    @property
    def is_caster(self) -> bool:
        return self.caster_kind is not CasterKind.NONE


@dataclass(frozen=True)
class ArmorProfile:
    base_ac: int
    dex_cap: str = field(default="full")


def normalise_key(value: str | None) -> str:
    """Lowercase ``value`` and fold hyphens, underscores and runs of spaces."""

    if not value:
        return ""
    cleaned = value.strip().lower().replace("-", " ").replace("_", " ")
    return " ".join(cleaned.split())


def canonical_skill(name: str | None) -> Optional[str]:
    """Return the Title Case skill name for ``name`` or ``None`` if unknown."""

    if not name:
        return None
    if name in SKILLS:
        return name
    return _SKILLS_BY_LOWER.get(" ".join(name.strip().lower().split()))


def _load_yaml(path: Path) -> object:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - packaging error
        raise SRDLoadError(f"Unable to read SRD data from {path}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:  # pragma: no cover - packaging error
        raise SRDLoadError(f"Failed to parse SRD data from {path}") from exc
    return data or []


def _require_mapping(name: str, value: object) -> MutableMapping[str, object]:
    if isinstance(value, MutableMapping):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    raise SRDLoadError(f"Expected mapping for {name}")


def _require_sequence(name: str, value: object) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return value
    raise SRDLoadError(f"Expected sequence for {name}")


def _require_ability(name: str, value: object) -> str:
    ability = str(value).upper()
    if ability not in ABILITY_NAMES:
        raise SRDLoadError(f"Unknown ability '{value}' in {name}")
    return ability


def _require_skills(name: str, value: object) -> tuple[str, ...]:
    skills: list[str] = []
    for entry in _require_sequence(name, value):
        skill = canonical_skill(str(entry))
        if skill is None:
            raise SRDLoadError(f"Unknown skill '{entry}' in {name}")
        skills.append(skill)
    return tuple(skills)


def _load_races() -> Dict[str, Race]:
    raw = _load_yaml(_SRD_PATH / "races.yaml")
    races: Dict[str, Race] = {}
    for entry in _require_sequence("races", raw):
        mapping = _require_mapping("race entry", entry)
        key = normalise_key(str(mapping.get("key") or mapping.get("name") or ""))
        if not key:
            raise SRDLoadError("Race entry missing key")
        bonus_map = _require_mapping(f"{key}.ability_bonuses", mapping.get("ability_bonuses", {}))
        bonuses = {
            _require_ability(f"{key}.ability_bonuses", ability): int(bonus)
            for ability, bonus in bonus_map.items()
        }
        skill_value = mapping.get("skill")
        skill = None
        if skill_value:
            skill = canonical_skill(str(skill_value))
            if skill is None:
                raise SRDLoadError(f"Unknown racial skill '{skill_value}' for {key}")
        races[key] = Race(
            key=key,
            name=str(mapping.get("name") or key.title()),
            ability_bonuses=MappingProxyType(bonuses),
            skill=skill,
        )
    return races


def _load_classes() -> Dict[str, CharacterClass]:
    raw = _load_yaml(_SRD_PATH / "classes.yaml")
    classes: Dict[str, CharacterClass] = {}
    for entry in _require_sequence("classes", raw):
        mapping = _require_mapping("class entry", entry)
        key = normalise_key(str(mapping.get("key") or ""))
        if not key:
            raise SRDLoadError("Class entry missing key")
        try:
            caster_kind = CasterKind(str(mapping.get("caster", "none")).lower())
        except ValueError as exc:
            raise SRDLoadError(f"Unknown caster kind for class {key}") from exc
        ability_value = mapping.get("spellcasting_ability")
        ability = _require_ability(f"{key}.spellcasting_ability", ability_value) if ability_value else None
        if caster_kind is not CasterKind.NONE and ability is None:
            raise SRDLoadError(f"Caster class {key} has no spellcasting ability")
        defense_value = mapping.get("unarmored_defense")
        defense = _require_ability(f"{key}.unarmored_defense", defense_value) if defense_value else None
        slots = str(mapping.get("slots", "none")).lower()
        if slots not in ("none", "full", "half", "pact"):
            raise SRDLoadError(f"Unknown slot progression '{slots}' for class {key}")
        cantrips = str(mapping.get("cantrips", "none")).lower()
        classes[key] = CharacterClass(
            key=key,
            caster_kind=caster_kind,
            spellcasting_ability=ability,
            hit_die=int(mapping.get("hit_die", 6)),
            hit_die_average=int(mapping.get("hit_die_average", 4)),
            slot_progression=slots,
            cantrip_progression=cantrips,
            unarmored_defense=defense,
        )
    return classes


def _load_skill_lists(section: str) -> Dict[str, tuple[str, ...]]:
    raw = _require_mapping("backgrounds.yaml", _load_yaml(_SRD_PATH / "backgrounds.yaml"))
    entries = _require_mapping(section, raw.get(section, {}))
    return {
        normalise_key(str(key)): _require_skills(f"{section}.{key}", value)
        for key, value in entries.items()
    }


def _load_armor() -> Dict[str, ArmorProfile]:
    raw = _require_mapping("armor.yaml", _load_yaml(_SRD_PATH / "armor.yaml"))
    armor: Dict[str, ArmorProfile] = {}
    for name, value in raw.items():
        entry = _require_mapping(f"armor {name}", value)
        dex_cap = str(entry.get("dex_cap", "full")).lower()
        if dex_cap not in DEX_CAPS:
            raise SRDLoadError(f"Unknown dex cap '{dex_cap}' for armor {name}")
        armor[str(name).lower()] = ArmorProfile(base_ac=int(entry["ac"]), dex_cap=dex_cap)
    return armor


def _freeze_table(table: Mapping[int, Mapping[int, int]]) -> Mapping[int, Mapping[int, int]]:
    return MappingProxyType({level: MappingProxyType(dict(slots)) for level, slots in table.items()})


def _load_slot_tables() -> tuple[Dict[str, Mapping[int, Mapping[int, int]]], Dict[str, Mapping[int, int]]]:
    raw = _require_mapping("spell_slots.yaml", _load_yaml(_SRD_PATH / "spell_slots.yaml"))
    tables: Dict[str, Mapping[int, Mapping[int, int]]] = {}
    for progression in ("full", "half"):
        rows = _require_mapping(progression, raw.get(progression, {}))
        table: Dict[int, Dict[int, int]] = {}
        for level, counts in rows.items():
            sequence = _require_sequence(f"{progression}.{level}", counts or [])
            table[int(level)] = {index + 1: int(count) for index, count in enumerate(sequence)}
        tables[progression] = _freeze_table(table)
    pact_rows = _require_mapping("pact", raw.get("pact", {}))
    tables["pact"] = _freeze_table(
        {
            int(level): {
                int(slot): int(count)
                for slot, count in _require_mapping(f"pact.{level}", counts).items()
            }
            for level, counts in pact_rows.items()
        }
    )
    for progression, table in tables.items():
        if sorted(table) != list(range(1, 21)):
            raise SRDLoadError(f"Slot table '{progression}' must cover levels 1-20")
    cantrip_raw = _require_mapping("cantrips", raw.get("cantrips", {}))
    cantrips = {
        str(name): MappingProxyType(
            {int(level): int(count) for level, count in _require_mapping(f"cantrips.{name}", value).items()}
        )
        for name, value in cantrip_raw.items()
    }
    return tables, cantrips


RACES: Mapping[str, Race] = MappingProxyType(_load_races())
CLASSES: Mapping[str, CharacterClass] = MappingProxyType(_load_classes())
BACKGROUND_SKILLS: Mapping[str, tuple[str, ...]] = MappingProxyType(_load_skill_lists("backgrounds"))
DEFAULT_CLASS_SKILLS: Mapping[str, tuple[str, ...]] = MappingProxyType(_load_skill_lists("class_defaults"))
ARMOR_TABLE: Mapping[str, ArmorProfile] = MappingProxyType(_load_armor())

_slot_tables, _cantrip_tables = _load_slot_tables()
SLOT_TABLES: Mapping[str, Mapping[int, Mapping[int, int]]] = MappingProxyType(_slot_tables)
FULL_CASTER_SLOTS = SLOT_TABLES["full"]
HALF_CASTER_SLOTS = SLOT_TABLES["half"]
PACT_CASTER_SLOTS = SLOT_TABLES["pact"]
CANTRIP_COUNT: Mapping[str, Mapping[int, int]] = MappingProxyType(_cantrip_tables)

NON_CASTER = CharacterClass(key="")


def race_for(name: str | None) -> Optional[Race]:
    return RACES.get(normalise_key(name))


def class_for(name: str | None) -> CharacterClass:
    """Return class data for ``name``; unknown classes behave as non-casters."""

    return CLASSES.get(normalise_key(name), NON_CASTER)


def background_skills_for(name: str | None) -> tuple[str, ...]:
    return BACKGROUND_SKILLS.get(normalise_key(name), ())


def default_class_skills_for(name: str | None) -> tuple[str, ...]:
    return DEFAULT_CLASS_SKILLS.get(normalise_key(name), ())


def armor_profile_for(name: str | None) -> Optional[ArmorProfile]:
    if not name:
        return None
    return ARMOR_TABLE.get(" ".join(name.strip().lower().split()))


__all__ = [
    "ABILITY_FULL_NAMES",
    "ABILITY_NAMES",
    "ARMOR_TABLE",
    "ArmorProfile",
    "BACKGROUND_SKILLS",
    "CANTRIP_COUNT",
    "CLASSES",
    "CasterKind",
    "CharacterClass",
    "DEFAULT_CLASS_SKILLS",
    "DEX_CAPS",
    "FULL_CASTER_SLOTS",
    "HALF_CASTER_SLOTS",
    "LIMITED_DEX_MAX",
    "PACT_CASTER_SLOTS",
    "RACES",
    "Race",
    "SKILLS",
    "SKILL_NAMES",
    "SLOT_TABLES",
    "SRDLoadError",
    "armor_profile_for",
    "background_skills_for",
    "canonical_skill",
    "class_for",
    "default_class_skills_for",
    "normalise_key",
    "race_for",
]
