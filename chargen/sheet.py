"""Plain-text character sheets and the variables of the HTML templates."""

from __future__ import annotations

from typing import Any, Dict, List
from urllib.parse import quote

from .characters import Character
from .rules import ABILITY_FULL_NAMES, ABILITY_NAMES

__all__ = ["character_path", "format_list_line", "render_text", "sheet_context", "skill_summary"]


def skill_summary(character: Character) -> List[str]:
    experts = set(character.expert_skills())
    return [
        f"{skill.lower()} (expertise)" if skill in experts else skill.lower()
        for skill in character.proficient_skills()
    ]


def _shows_spellcasting(character: Character) -> bool:
    has_slots = any(count > 0 for count in character.max_spell_slots.values())
    return bool(character.spellcasting_ability) and has_slots and character.character_class.lower() != "warlock"


def format_list_line(character: Character) -> str:
    return f"{character.name}: Lvl {character.level} {character.race} {character.character_class}"


def render_text(character: Character) -> str:
    lines = [
        f"Name: {character.name}",
        f"Class: {character.character_class.lower()}",
        f"Race: {character.race.lower()}",
        f"Background: {character.background.lower()}",
        f"Level: {character.level}",
        "Ability scores:",
    ]
    for ability in ABILITY_NAMES:
        entry = character.ability_scores.get(ability)
        if entry is not None:
            lines.append(f"  {ability}: {entry.score} ({entry.modifier:+d})")
    lines.append(f"Proficiency bonus: +{character.proficiency_bonus}")
    lines.append(f"Skill proficiencies: {', '.join(skill_summary(character))}")

    slots = [(level, count) for level, count in sorted(character.max_spell_slots.items()) if count > 0]
    if slots:
        lines.append("Spell slots:")
        lines.extend(f"  Level {level}: {count}" for level, count in slots)

    if _shows_spellcasting(character):
        ability = ABILITY_FULL_NAMES.get(character.spellcasting_ability, character.spellcasting_ability)
        lines.append(f"Spellcasting ability: {ability}")
        lines.append(f"Spell save DC: {character.spell_save_dc}")
        lines.append(f"Spell attack bonus: {character.spell_attack_bonus:+d}")

    if character.known_spells:
        lines.append(f"Known spells: {', '.join(sorted(character.known_spells))}")
    if character.prepared_spells:
        lines.append(f"Prepared spells: {', '.join(sorted(character.prepared_spells))}")

    if character.main_hand is not None:
        lines.append(f"Main hand: {character.main_hand.name}")
    if character.off_hand is not None and not (character.main_hand and character.main_hand.two_handed):
        lines.append(f"Off hand: {character.off_hand.name}")
    if character.armor is not None:
        lines.append(f"Armor: {character.armor.name}")
    if character.shield is not None:
        lines.append(f"Shield: {character.shield.name}")

    lines.append(f"Armor class: {character.armor_class}")
    lines.append(f"Initiative bonus: {character.initiative}")
    lines.append(f"Passive perception: {character.passive_perception}")
    return "\n".join(lines)


def sheet_context(character: Character) -> Dict[str, Any]:
    """Template variables for ``character_sheet.html``."""

    summary = [
        ("Class", character.character_class),
        ("Race", character.race),
        ("Background", character.background),
        ("Level", character.level),
        ("Hit points", f"{character.current_hit_points} / {character.max_hit_points}"),
        ("Armor class", character.armor_class),
        ("Initiative bonus", character.initiative),
        ("Passive perception", character.passive_perception),
        ("Proficiency bonus", f"+{character.proficiency_bonus}"),
    ]
    abilities = [
        (ability, f"{entry.score} ({entry.modifier:+d})")
        for ability, entry in ((name, character.ability_scores.get(name)) for name in ABILITY_NAMES)
        if entry is not None
    ]
    equipment = [
        (label, item.name)
        for label, item in (
            ("Main hand", character.main_hand),
            ("Off hand", character.off_hand),
            ("Armor", character.armor),
            ("Shield", character.shield),
        )
        if item is not None
    ]

    spellcasting = []
    if _shows_spellcasting(character):
        ability = ABILITY_FULL_NAMES.get(character.spellcasting_ability, character.spellcasting_ability)
        spellcasting.append(("Spellcasting ability", ability))
        spellcasting.append(("Spell save DC", character.spell_save_dc))
        spellcasting.append(("Spell attack bonus", f"{character.spell_attack_bonus:+d}"))
    spellcasting.extend(
        (f"Level {level} slots", count)
        for level, count in sorted(character.max_spell_slots.items())
        if count > 0
    )
    spell_lists = [
        (title, [f"{spell.name} (level {spell.level})" for _, spell in sorted(spells.items())])
        for title, spells in (("Known spells", character.known_spells), ("Prepared spells", character.prepared_spells))
        if spells
    ]

    return {
        "character": character,
        "summary": summary,
        "abilities": abilities,
        "skills": skill_summary(character),
        "equipment": equipment,
        "spellcasting": spellcasting,
        "spell_lists": spell_lists,
    }


def character_path(name: str) -> str:
    return quote(name, safe="")
