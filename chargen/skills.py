"""Merging of skill proficiencies granted by class, background and race."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .characters import Character
from .errors import ValidationError
from .rules import background_skills_for, canonical_skill, default_class_skills_for, race_for

__all__ = ["SkillSource", "apply_skill_sources", "canonical_skills", "collect_skill_sources"]


@dataclass(frozen=True)
class SkillSource:
    origin: str
    skills: tuple[str, ...]


def canonical_skills(names: Iterable[str]) -> tuple[str, ...]:
    """Map caller-supplied names onto canonical skills, dropping duplicates."""

    resolved: list[str] = []
    unknown: list[str] = []
    for name in names:
        if not name or not name.strip():
            continue
        skill = canonical_skill(name)
        if skill is None:
            unknown.append(name.strip())
        elif skill not in resolved:
            resolved.append(skill)
    if unknown:
        raise ValidationError(f"Unknown skill(s): {', '.join(unknown)}")
    return tuple(resolved)


def collect_skill_sources(
    race: str,
    character_class: str,
    background: str,
    chosen: Sequence[str] = (),
) -> list[SkillSource]:
    """Return the independent sources of skill proficiency for a new character.

    The caller's picks stand in for the class defaults when given. A skill
    granted by more than one source becomes expertise once applied.
    """

    class_skills = canonical_skills(chosen) or tuple(dict.fromkeys(default_class_skills_for(character_class)))
    sources = [
        SkillSource("class", class_skills),
        SkillSource("background", tuple(dict.fromkeys(background_skills_for(background)))),
    ]
    race_data = race_for(race)
    if race_data is not None and race_data.skill:
        sources.append(SkillSource("race", (race_data.skill,)))
    return [source for source in sources if source.skills]


def apply_skill_sources(character: Character, sources: Iterable[SkillSource]) -> None:
    for source in sources:
        character.set_skill_proficiencies(source.skills)
