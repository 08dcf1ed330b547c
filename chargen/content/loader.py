"""Loading of the tabular SRD equipment and spell catalogs."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

from ..rules import armor_profile_for
from .models import Armor, SchemaError, Shield, Spell, Weapon, normalise_name
from .registry import ArmorRegistry, BaseRegistry, ShieldRegistry, SpellRegistry, WeaponRegistry

__all__ = ["ContentLibrary", "ContentLoadError"]

log = logging.getLogger(__name__)


class ContentLoadError(RuntimeError):
    """Raised when content could not be loaded from disk."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        if path is not None:
            message = f"{message} (source: {path})"
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class ContentLibrary:
    """Read-only catalogs shared by the character service."""

    spells: SpellRegistry
    weapons: WeaponRegistry
    armors: ArmorRegistry
    shields: ShieldRegistry

    @classmethod
    def empty(cls) -> "ContentLibrary":
        return cls(SpellRegistry(), WeaponRegistry(), ArmorRegistry(), ShieldRegistry())

    @classmethod
    def load_from_paths(cls, equipment_path: Path, spells_path: Path) -> "ContentLibrary":
        spells = _load_spells(Path(spells_path))
        weapons, armors, shields = _load_equipment(Path(equipment_path))
        log.info(
            "Loaded %s spells, %s weapons, %s armors and %s shields",
            len(spells),
            len(weapons),
            len(armors),
            len(shields),
        )
        return cls(spells=spells, weapons=weapons, armors=armors, shields=shields)


def _iter_rows(path: Path) -> Iterator[tuple[int, Sequence[str]]]:
    """Yield ``(line_number, row)`` for every data row after the header."""

    try:
        handle = path.open(newline="", encoding="utf-8")
    except OSError as exc:
        raise ContentLoadError("Unable to open content file", path=path) from exc
    with handle:
        reader = csv.reader(handle)
        try:
            rows = list(reader)
        except csv.Error as exc:
            raise ContentLoadError(f"Malformed CSV: {exc}", path=path) from exc
    for index, row in enumerate(rows[1:], start=2):
        if not row or not any(cell.strip() for cell in row):
            continue
        yield index, row


def _register_last(registry: BaseRegistry, name: str, entry: object, path: Path, line: int) -> None:
    if name in registry:
        log.warning("Duplicate %s '%s' on line %s of %s replaces the earlier row", registry.kind, name, line, path)
    registry.register(name, entry, replace=True)


def _load_spells(path: Path) -> SpellRegistry:
    registry = SpellRegistry()
    for line, row in _iter_rows(path):
        if len(row) < 3:
            raise ContentLoadError(f"Spell row {line} needs Name, Level and Classes columns", path=path)
        name, level_text, classes_text = row[0], row[1].strip(), row[2]
        try:
            level = int(level_text)
        except ValueError:
            log.warning("Skipping spell '%s' with invalid level '%s'", name, level_text)
            continue
        classes = tuple(
            entry.strip()
            for entry in classes_text.replace('"', "").split(",")
            if entry.strip()
        )
        try:
            spell = Spell(name=name, level=level, classes=classes)
            _register_last(registry, spell.name, spell, path, line)
        except (SchemaError, ValueError) as exc:
            raise ContentLoadError(str(exc), path=path) from exc
    return registry


def _load_equipment(path: Path) -> tuple[WeaponRegistry, ArmorRegistry, ShieldRegistry]:
    weapons = WeaponRegistry()
    armors = ArmorRegistry()
    shields = ShieldRegistry()
    for line, row in _iter_rows(path):
        if len(row) < 2:
            raise ContentLoadError(f"Equipment row {line} needs Name and Type columns", path=path)
        raw_name, item_type = row[0].strip(), row[1].strip()
        name = normalise_name(raw_name)
        kind = item_type.lower()
        try:
            if kind == "weapon":
                _register_last(weapons, name, Weapon(name=name, item_type=item_type), path, line)
            elif kind == "shield" or (kind == "armor" and name == "shield"):
                _register_last(shields, name, Shield(name=name, item_type=item_type), path, line)
            elif kind == "armor":
                profile = armor_profile_for(raw_name)
                if profile is None:
                    log.debug("Skipping armor '%s' without an AC profile", raw_name)
                    continue
                armor = Armor(name=name, base_ac=profile.base_ac, dex_cap=profile.dex_cap, item_type=item_type)
                _register_last(armors, name, armor, path, line)
        except ValueError as exc:
            raise ContentLoadError(str(exc), path=path) from exc
    return weapons, armors, shields
