"""Application service coordinating characters, catalogs, storage and enrichment."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Dict, List, Mapping, Sequence

from .characters import MAIN_HAND, MIN_LEVEL, OFF_HAND, Character, validate_level
from .config import Settings
from .content import ContentLibrary, Spell, normalise_name
from .enrichment import Enricher, NullEnricher, SRDApiClient, TokenBucket
from .errors import NotFoundError, RuleViolation, ValidationError
from .repository import CharacterRepository, FileCharacterRepository
from .rules import ABILITY_NAMES, CasterKind, normalise_key
from .skills import apply_skill_sources, collect_skill_sources

__all__ = ["CharacterService", "CreateCharacterRequest", "create_service"]

log = logging.getLogger(__name__)

DEFAULT_SCORE = 10
ITEM_TYPES = ("weapon", "armor", "shield")


def _default_scores() -> Dict[str, int]:
    return dict.fromkeys(ABILITY_NAMES, DEFAULT_SCORE)


@dataclass
class CreateCharacterRequest:
    name: str
    race: str = "human"
    character_class: str = "wizard"
    background: str = "acolyte"
    level: int = MIN_LEVEL
    scores: Mapping[str, int] = field(default_factory=_default_scores)
    skills: Sequence[str] = ()


class CharacterService:
    """Use cases for creating, reading and mutating characters.

    Every mutation loads the stored character, applies the change, runs the
    full derivation pass, awaits any enrichment and only then persists.
    """

    def __init__(
        self,
        repository: CharacterRepository,
        enricher: Enricher | None = None,
        content: ContentLibrary | None = None,
        *,
        enrichment_timeout: float = 10.0,
    ) -> None:
        self._repository = repository
        self._enricher = enricher or NullEnricher()
        self._content = content or ContentLibrary.empty()
        self._enrichment_timeout = enrichment_timeout

    @property
    def content(self) -> ContentLibrary:
        return self._content

    async def aclose(self) -> None:
        await self._enricher.close()

    # -- helpers -----------------------------------------------------------
    async def _load(self, name: str) -> Character:
        character = await self._repository.find_by_id(name)
        return character.recompute()

    async def _enrich(self, description: str, operation: Awaitable[None]) -> None:
        try:
            await asyncio.wait_for(operation, timeout=self._enrichment_timeout)
        except asyncio.TimeoutError:
            log.warning("Enrichment of %s timed out after %.1fs", description, self._enrichment_timeout)
        except Exception:
            log.exception("Enrichment of %s failed", description)

    def _find_spell(self, spell_name: str) -> Spell:
        key = normalise_name(spell_name)
        if not key:
            raise ValidationError("Spell name is required")
        try:
            return self._content.spells.get(key)
        except KeyError:
            raise NotFoundError("spell", spell_name) from None

    # -- queries -----------------------------------------------------------
    async def get_character(self, name: str) -> Character:
        return await self._load(name)

    async def list_characters(self) -> List[Character]:
        characters: List[Character] = []
        for character in await self._repository.find_all():
            try:
                characters.append(character.recompute())
            except ValidationError as exc:
                log.warning("Skipping stored character '%s': %s", character.name, exc)
        return sorted(characters, key=lambda character: character.name)

    # -- commands ----------------------------------------------------------
    async def create_character(self, request: CreateCharacterRequest) -> Character:
        name = request.name.strip() if request.name else ""
        if not name:
            raise ValidationError("Character name is required")
        level = validate_level(request.level)

        try:
            await self._repository.find_by_id(name)
        except NotFoundError:
            pass
        else:
            raise RuleViolation(f"character '{name}' already exists")

        race = normalise_key(request.race)
        character_class = normalise_key(request.character_class)
        background = normalise_key(request.background)

        character = Character.new(name, race, character_class, background, request.scores)
        sources = collect_skill_sources(race, character_class, background, request.skills)
        apply_skill_sources(character, sources)
        character.level = level
        character.recompute()

        await self._repository.save(character)
        log.info("Created level %s %s %s '%s'", level, race, character_class, name)
        return character

    async def delete_character(self, name: str) -> None:
        await self._repository.delete(name)
        log.info("Deleted character '%s'", name)

    async def update_character_level(self, name: str, level: int) -> Character:
        new_level = validate_level(level)
        character = await self._load(name)
        character.level = new_level
        character.recompute()
        await self._repository.save(character)
        log.info("Character '%s' is now level %s", name, new_level)
        return character

    async def equip_item(self, name: str, item_name: str, item_type: str, slot: str = "") -> Character:
        kind = (item_type or "").strip().lower()
        if kind not in ITEM_TYPES:
            raise ValidationError(f"invalid item type: {item_type}. Must be 'weapon', 'armor', or 'shield'")
        if not item_name or not item_name.strip():
            raise ValidationError("Item name is required")

        character = await self._load(name)
        if kind == "weapon":
            await self._equip_weapon(character, item_name, slot)
        elif kind == "armor":
            try:
                armor = self._content.armors.get(item_name).copy()
            except KeyError:
                raise NotFoundError("armor", item_name) from None
            character.armor = armor
            await self._enrich(f"armor '{armor.name}'", self._enricher.enrich_armor(armor))
        else:
            try:
                character.shield = self._content.shields.get(item_name).copy()
            except KeyError:
                raise NotFoundError("shield", item_name) from None

        character.recompute()
        await self._repository.save(character)
        return character

    async def _equip_weapon(self, character: Character, item_name: str, slot: str) -> None:
        try:
            weapon = self._content.weapons.get(item_name).copy()
        except KeyError:
            raise NotFoundError("weapon", item_name) from None
        slot_key = normalise_name(slot or "")
        character.equip_weapon_slot(weapon, slot_key)
        await self._enrich(f"weapon '{weapon.name}'", self._enricher.enrich_weapon(weapon))

        main_hand = character.main_hand
        if slot_key == OFF_HAND and main_hand is not None and main_hand.two_handed:
            character.off_hand = None
            raise RuleViolation(
                f"cannot equip to off hand: main hand weapon '{main_hand.name}' is two-handed"
            )
        if slot_key == MAIN_HAND and weapon.two_handed:
            character.off_hand = None

    async def learn_spell(self, name: str, spell_name: str) -> Character:
        character = await self._load(name)
        if character.caster_kind is CasterKind.NONE:
            raise RuleViolation("this class can't cast spells")
        if character.caster_kind is CasterKind.PREPARED:
            raise RuleViolation("this class prepares spells and can't learn them")

        spell = self._find_spell(spell_name)
        if not spell.available_to(character.character_class):
            raise RuleViolation(
                f"character class '{character.character_class}' is not listed as a caster for spell '{spell_name}'"
            )
        if spell.name in character.known_spells:
            raise RuleViolation(f"character '{name}' already knows the spell '{spell_name}'")

        learned = spell.copy()
        character.known_spells[learned.name] = learned
        await self._enrich(f"spell '{learned.name}'", self._enricher.enrich_spell(learned))

        character.recompute()
        await self._repository.save(character)
        return character

    async def prepare_spell(self, name: str, spell_name: str) -> Character:
        character = await self._load(name)
        if character.caster_kind is CasterKind.NONE:
            raise RuleViolation("this class can't cast spells")
        if character.caster_kind is CasterKind.LEARNED:
            raise RuleViolation("this class learns spells and can't prepare them")

        spell = self._find_spell(spell_name)
        if not spell.available_to(character.character_class):
            raise RuleViolation(
                f"character class '{character.character_class}' is not listed as a caster for spell '{spell_name}'"
            )
        if spell.level > character.max_slot_level() or character.max_spell_slots.get(spell.level, 0) <= 0:
            raise RuleViolation("the spell has higher level than the available spell slots")

        ability = character.class_data.spellcasting_ability
        if not ability or ability not in character.ability_scores:
            raise RuleViolation(f"class requires spellcasting ability {ability or 'none'}, but score is missing")

        limit = character.preparation_limit()
        if len(character.prepared_spells) >= limit:
            raise RuleViolation(
                f"character '{name}' has reached the limit of {limit} prepared spells "
                f"(Lvl {character.level} + {ability} Mod {character.modifier(ability):+d})"
            )
        if spell.name in character.prepared_spells:
            raise RuleViolation(f"spell '{spell_name}' is already prepared")

        prepared = spell.copy()
        character.prepared_spells[prepared.name] = prepared
        await self._enrich(f"spell '{prepared.name}'", self._enricher.enrich_spell(prepared))

        await self._repository.save(character)
        return character


def create_service(settings: Settings) -> CharacterService:
    """Wire the file repository, catalogs and enricher described by ``settings``.

    Raises :class:`~chargen.content.ContentLoadError` when the catalogs cannot
    be read.
    """

    content = ContentLibrary.load_from_paths(settings.equipment_csv, settings.spells_csv)
    repository = FileCharacterRepository(settings.data_file)
    enricher: Enricher
    if settings.offline:
        enricher = NullEnricher()
    else:
        enricher = SRDApiClient(
            settings.api_base_url,
            rate_limiter=TokenBucket(settings.rate_limit),
            timeout=settings.http_timeout,
        )
    return CharacterService(
        repository,
        enricher,
        content,
        enrichment_timeout=settings.enrichment_timeout,
    )
