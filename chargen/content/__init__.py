"""Equipment and spell catalogs loaded from the SRD tables."""

from .loader import ContentLibrary, ContentLoadError
from .models import Armor, SchemaError, Shield, Spell, Weapon, normalise_name
from .registry import ArmorRegistry, ShieldRegistry, SpellRegistry, WeaponRegistry

__all__ = [
    "Armor",
    "ArmorRegistry",
    "ContentLibrary",
    "ContentLoadError",
    "SchemaError",
    "Shield",
    "ShieldRegistry",
    "Spell",
    "SpellRegistry",
    "Weapon",
    "WeaponRegistry",
    "normalise_name",
]
