"""Domain model for a fifth-edition player character and its derived statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

from .content.models import Armor, Shield, Spell, Weapon, normalise_name
from .errors import RuleViolation, ValidationError
from .rules import (
    ABILITY_NAMES,
    CANTRIP_COUNT,
    LIMITED_DEX_MAX,
    SKILL_NAMES,
    SKILLS,
    SLOT_TABLES,
    CasterKind,
    CharacterClass,
    class_for,
    race_for,
)

MIN_LEVEL = 1
MAX_LEVEL = 20
SHIELD_AC_BONUS = 2
MAIN_HAND = "main hand"
OFF_HAND = "off hand"


def ability_modifier(score: int) -> int:
    """Return the D&D ability modifier for a given score."""

    return (score - 10) // 2


def proficiency_bonus_for(level: int) -> int:
    return 2 + (level - 1) // 4


def validate_level(level: int) -> int:
    try:
        value = int(level)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Level must be an integer, got {level!r}") from exc
    if not MIN_LEVEL <= value <= MAX_LEVEL:
        raise ValidationError(f"Level must be between {MIN_LEVEL} and {MAX_LEVEL}, got {value}")
    return value


@dataclass
class Ability:
    score: int
    modifier: int = 0

    def __post_init__(self) -> None:
        self.score = int(self.score)
        self.calculate_modifier()

    def calculate_modifier(self) -> int:
        self.modifier = ability_modifier(self.score)
        return self.modifier


@dataclass
class Character:
    """A player character with raw inputs and the statistics derived from them.

    Derived fields are a cache: :meth:`recompute` rebuilds every one of them
    from the raw inputs, so values read back from storage are never trusted.
    """

    name: str
    race: str
    character_class: str
    background: str
    level: int = 1
    caster_kind: CasterKind = CasterKind.NONE
    proficiency_bonus: int = 2

    max_hit_points: int = 0
    current_hit_points: int = 0
    armor_class: int = 10
    initiative: int = 0
    passive_perception: int = 10

    ability_scores: Dict[str, Ability] = field(default_factory=dict)
    skill_proficiencies: Dict[str, bool] = field(default_factory=lambda: dict.fromkeys(SKILL_NAMES, False))
    skill_expertise: Dict[str, bool] = field(default_factory=dict)

    main_hand: Optional[Weapon] = None
    off_hand: Optional[Weapon] = None
    armor: Optional[Armor] = None
    shield: Optional[Shield] = None

    known_spells: Dict[str, Spell] = field(default_factory=dict)
    prepared_spells: Dict[str, Spell] = field(default_factory=dict)
    max_spell_slots: Dict[int, int] = field(default_factory=dict)
    spellcasting_ability: str = ""
    spell_save_dc: int = 0
    spell_attack_bonus: int = 0

    @classmethod
    def new(
        cls,
        name: str,
        race: str,
        character_class: str,
        background: str,
        scores: Mapping[str, int],
    ) -> "Character":
        """Build a level 1 character, applying racial ability increases."""

        if len(scores) != len(ABILITY_NAMES):
            raise ValidationError(
                f"Must provide {len(ABILITY_NAMES)} ability scores, got {len(scores)}"
            )
        normalised = {str(ability).strip().upper(): int(score) for ability, score in scores.items()}
        unknown = set(normalised) - set(ABILITY_NAMES)
        if unknown or len(normalised) != len(ABILITY_NAMES):
            raise ValidationError(
                "Ability scores must cover exactly "
                f"{', '.join(ABILITY_NAMES)}; unknown: {', '.join(sorted(unknown)) or 'none'}"
            )

        character = cls(
            name=name,
            race=race,
            character_class=character_class,
            background=background,
            caster_kind=class_for(character_class).caster_kind,
        )
        character.ability_scores = {ability: Ability(normalised[ability]) for ability in ABILITY_NAMES}

        race_data = race_for(race)
        if race_data is not None:
            for ability, bonus in race_data.ability_bonuses.items():
                current = character.ability_scores.get(ability)
                if current is not None:
                    current.score += bonus
                    current.calculate_modifier()

        character.update_proficiency_bonus(MIN_LEVEL)
        return character

    # -- lookups -----------------------------------------------------------
    @property
    def class_data(self) -> CharacterClass:
        return class_for(self.character_class)

    def modifier(self, ability: str) -> int:
        entry = self.ability_scores.get(ability)
        return entry.modifier if entry is not None else 0

    def proficient_skills(self) -> list[str]:
        return sorted(skill for skill, proficient in self.skill_proficiencies.items() if proficient)

    def expert_skills(self) -> list[str]:
        return sorted(skill for skill, expert in self.skill_expertise.items() if expert)

    def max_slot_level(self) -> int:
        """Highest spell level (cantrips excluded) with at least one slot."""

        levels = [level for level, count in self.max_spell_slots.items() if level > 0 and count > 0]
        return max(levels, default=0)

    def preparation_limit(self) -> int:
        ability = self.class_data.spellcasting_ability
        modifier = self.modifier(ability) if ability else 0
        return max(1, self.level // 2 + modifier)

    # -- skills ------------------------------------------------------------
    def set_skill_proficiencies(self, skills: Iterable[str]) -> None:
        """Mark ``skills`` proficient; a skill that already was becomes expertise."""

        for skill in skills:
            if skill not in SKILLS:
                continue
            if self.skill_proficiencies.get(skill):
                self.skill_expertise[skill] = True
            self.skill_proficiencies[skill] = True

    def get_skill_modifier(self, skill: str) -> int:
        ability = SKILLS.get(skill)
        if ability is None or ability not in self.ability_scores:
            return 0
        modifier = self.modifier(ability)
        if self.skill_proficiencies.get(skill):
            modifier += self.proficiency_bonus
        return modifier

    # -- derivations -------------------------------------------------------
    def update_proficiency_bonus(self, level: int) -> None:
        self.level = validate_level(level)
        self.proficiency_bonus = proficiency_bonus_for(self.level)

    def calculate_max_hit_points(self) -> None:
        data = self.class_data
        con = self.modifier("CON")
        total = max(1, data.hit_die + con)
        for _ in range(2, self.level + 1):
            total += max(1, data.hit_die_average + con)

        previous_max = self.max_hit_points
        self.max_hit_points = total
        if self.current_hit_points == 0 or self.current_hit_points == previous_max:
            self.current_hit_points = total
        elif self.current_hit_points > total:
            self.current_hit_points = total
        elif self.current_hit_points < 0:
            self.current_hit_points = 0

    def calculate_combat_stats(self) -> None:
        dex = self.modifier("DEX")
        self.initiative = dex
        self.passive_perception = 10 + self.get_skill_modifier("Perception")

        if self.armor is not None and self.armor.base_ac > 0:
            if self.armor.dex_cap == "limited":
                adjusted_dex = min(dex, LIMITED_DEX_MAX)
            elif self.armor.dex_cap == "none":
                adjusted_dex = 0
            else:
                adjusted_dex = dex
            armor_class = self.armor.base_ac + adjusted_dex
        else:
            armor_class = 10 + dex
            defense = self.class_data.unarmored_defense
            if self.armor is None and defense:
                armor_class += self.modifier(defense)

        if self.shield is not None:
            armor_class += SHIELD_AC_BONUS
        self.armor_class = armor_class

    def calculate_spell_stats(self) -> None:
        ability = self.class_data.spellcasting_ability
        if not ability:
            self.spellcasting_ability = ""
            self.spell_save_dc = 0
            self.spell_attack_bonus = 0
            return
        self.spellcasting_ability = ability
        modifier = self.modifier(ability)
        self.spell_save_dc = 8 + self.proficiency_bonus + modifier
        self.spell_attack_bonus = self.proficiency_bonus + modifier

    def calculate_max_spell_slots(self) -> None:
        data = self.class_data
        self.max_spell_slots = {}
        table = SLOT_TABLES.get(data.slot_progression)
        if table is None:
            return
        self.max_spell_slots.update(table.get(self.level, {}))

        cantrips = CANTRIP_COUNT.get(data.cantrip_progression)
        if cantrips:
            thresholds = [threshold for threshold in cantrips if threshold <= self.level]
            if thresholds:
                count = cantrips[max(thresholds)]
                if count > 0:
                    self.max_spell_slots[0] = count

    def recompute(self) -> "Character":
        """Run every derivation, in dependency order."""

        self.caster_kind = self.class_data.caster_kind
        for skill in SKILL_NAMES:
            self.skill_proficiencies.setdefault(skill, False)
        for skill, expert in list(self.skill_expertise.items()):
            if expert and not self.skill_proficiencies.get(skill):
                self.skill_expertise[skill] = False
        for ability in self.ability_scores.values():
            ability.calculate_modifier()
        self.update_proficiency_bonus(self.level)
        self.calculate_max_hit_points()
        self.calculate_combat_stats()
        self.calculate_spell_stats()
        self.calculate_max_spell_slots()
        return self

    # -- equipment ---------------------------------------------------------
    def equip_weapon_slot(self, weapon: Weapon, slot: str) -> None:
        slot_key = " ".join(str(slot).strip().lower().split())
        if slot_key == MAIN_HAND:
            if self.main_hand is not None:
                raise RuleViolation("main hand already occupied")
            self.main_hand = weapon
            if weapon.two_handed:
                self.off_hand = None
        elif slot_key == OFF_HAND:
            if self.off_hand is not None:
                raise RuleViolation("off hand already occupied")
            if self.main_hand is not None and self.main_hand.two_handed:
                raise RuleViolation(
                    f"cannot equip to off hand: main hand weapon '{self.main_hand.name}' is two-handed"
                )
            self.off_hand = weapon
        else:
            raise ValidationError(
                f"invalid equipment slot '{slot}'. Must be '{MAIN_HAND}' or '{OFF_HAND}'"
            )

    # -- serialisation -----------------------------------------------------
    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "race": self.race,
            "class": self.character_class,
            "background": self.background,
            "level": self.level,
            "caster_kind": self.caster_kind.value,
            "proficiency_bonus": self.proficiency_bonus,
            "max_hit_points": self.max_hit_points,
            "current_hit_points": self.current_hit_points,
            "armor_class": self.armor_class,
            "initiative": self.initiative,
            "passive_perception": self.passive_perception,
            "ability_scores": {
                ability: {"score": entry.score, "modifier": entry.modifier}
                for ability, entry in self.ability_scores.items()
            },
            "skill_proficiencies": dict(self.skill_proficiencies),
            "skill_expertise": dict(self.skill_expertise),
            "main_hand": self.main_hand.to_dict() if self.main_hand else None,
            "off_hand": self.off_hand.to_dict() if self.off_hand else None,
            "armor": self.armor.to_dict() if self.armor else None,
            "shield": self.shield.to_dict() if self.shield else None,
            "known_spells": {key: spell.to_dict() for key, spell in self.known_spells.items()},
            "prepared_spells": {key: spell.to_dict() for key, spell in self.prepared_spells.items()},
            "max_spell_slots": {str(level): count for level, count in sorted(self.max_spell_slots.items())},
            "spellcasting_ability": self.spellcasting_ability,
            "spell_save_dc": self.spell_save_dc,
            "spell_attack_bonus": self.spell_attack_bonus,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Character":
        """Rebuild a character from :meth:`to_dict` output.

        Derived values are restored as stored; callers run :meth:`recompute`
        before relying on them.
        """

        scores_raw = dict(data.get("ability_scores") or {})
        ability_scores: Dict[str, Ability] = {}
        for ability, entry in scores_raw.items():
            score = entry.get("score") if isinstance(entry, Mapping) else entry
            ability_scores[str(ability).upper()] = Ability(int(score))

        skills = dict.fromkeys(SKILL_NAMES, False)
        for skill, value in dict(data.get("skill_proficiencies") or {}).items():
            if skill in SKILLS:
                skills[skill] = bool(value)
        expertise = {
            skill: bool(value)
            for skill, value in dict(data.get("skill_expertise") or {}).items()
            if skill in SKILLS
        }

        class_name = str(data.get("class") or "")
        try:
            caster_kind = CasterKind(str(data.get("caster_kind") or ""))
        except ValueError:
            caster_kind = class_for(class_name).caster_kind

        def _optional(key: str, factory):
            value = data.get(key)
            return factory(value) if value else None

        return cls(
            name=str(data["name"]),
            race=str(data.get("race") or ""),
            character_class=class_name,
            background=str(data.get("background") or ""),
            level=int(data.get("level") or MIN_LEVEL),
            caster_kind=caster_kind,
            proficiency_bonus=int(data.get("proficiency_bonus") or 2),
            max_hit_points=int(data.get("max_hit_points") or 0),
            current_hit_points=int(data.get("current_hit_points") or 0),
            armor_class=int(data.get("armor_class") or 10),
            initiative=int(data.get("initiative") or 0),
            passive_perception=int(data.get("passive_perception") or 10),
            ability_scores=ability_scores,
            skill_proficiencies=skills,
            skill_expertise=expertise,
            main_hand=_optional("main_hand", Weapon.from_mapping),
            off_hand=_optional("off_hand", Weapon.from_mapping),
            armor=_optional("armor", Armor.from_mapping),
            shield=_optional("shield", Shield.from_mapping),
            known_spells={
                normalise_name(key): Spell.from_mapping(value)
                for key, value in dict(data.get("known_spells") or {}).items()
            },
            prepared_spells={
                normalise_name(key): Spell.from_mapping(value)
                for key, value in dict(data.get("prepared_spells") or {}).items()
            },
            max_spell_slots={
                int(level): int(count) for level, count in dict(data.get("max_spell_slots") or {}).items()
            },
            spellcasting_ability=str(data.get("spellcasting_ability") or ""),
            spell_save_dc=int(data.get("spell_save_dc") or 0),
            spell_attack_bonus=int(data.get("spell_attack_bonus") or 0),
        )


__all__ = [
    "Ability",
    "Character",
    "MAIN_HAND",
    "MAX_LEVEL",
    "MIN_LEVEL",
    "OFF_HAND",
    "SHIELD_AC_BONUS",
    "ability_modifier",
    "proficiency_bonus_for",
    "validate_level",
]
