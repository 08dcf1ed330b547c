import asyncio
import json
import logging
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from chargen.content import (
    Armor,
    ArmorRegistry,
    ContentLibrary,
    Shield,
    ShieldRegistry,
    Spell,
    SpellRegistry,
    Weapon,
    WeaponRegistry,
)
from chargen.enrichment import Enricher
from chargen.errors import NotFoundError, RuleViolation, ValidationError
from chargen.repository import FileCharacterRepository, InMemoryCharacterRepository
from chargen.service import CharacterService, CreateCharacterRequest

STANDARD_ARRAY = {"STR": 15, "DEX": 14, "CON": 13, "INT": 12, "WIS": 10, "CHA": 8}

TWO_HANDED = {"greatsword", "greataxe"}


class RecordingEnricher(Enricher):
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def enrich_spell(self, spell: Spell) -> None:
        self.calls.append(("spell", spell.name))
        spell.school = "Evocation"
        spell.range = "120 feet"

    async def enrich_weapon(self, weapon: Weapon) -> None:
        self.calls.append(("weapon", weapon.name))
        weapon.two_handed = weapon.name in TWO_HANDED
        weapon.damage = "2d6 slashing" if weapon.two_handed else "1d4 piercing"

    async def enrich_armor(self, armor: Armor) -> None:
        self.calls.append(("armor", armor.name))
        armor.category = "Heavy"


class FailingEnricher(Enricher):
    async def enrich_spell(self, spell: Spell) -> None:
        raise RuntimeError("boom")

    async def enrich_weapon(self, weapon: Weapon) -> None:
        raise RuntimeError("boom")

    async def enrich_armor(self, armor: Armor) -> None:
        raise RuntimeError("boom")


class SlowEnricher(RecordingEnricher):
    async def enrich_spell(self, spell: Spell) -> None:
        await asyncio.sleep(10)


class BlockingEnricher(RecordingEnricher):
    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def enrich_spell(self, spell: Spell) -> None:
        if self.started.is_set():
            return await super().enrich_spell(spell)
        self.started.set()
        await asyncio.Event().wait()


class StalledRepository(FileCharacterRepository):
    def __init__(self, storage_path: Path) -> None:
        super().__init__(storage_path)
        self.stall = False
        self.stalled = asyncio.Event()

    async def save(self, character) -> None:
        if self.stall:
            self.stalled.set()
            await asyncio.Event().wait()
        await super().save(character)


def _content() -> ContentLibrary:
    spells = SpellRegistry(
        [
            Spell(name="Fire Bolt", level=0, classes=("Sorcerer", "Wizard")),
            Spell(name="Sacred Flame", level=0, classes=("Cleric",)),
            Spell(name="Magic Missile", level=1, classes=("Sorcerer", "Wizard")),
            Spell(name="Shield", level=1, classes=("Sorcerer", "Wizard")),
            Spell(name="Sleep", level=1, classes=("Bard", "Sorcerer", "Wizard")),
            Spell(name="Burning Hands", level=1, classes=("Sorcerer", "Wizard")),
            Spell(name="Cure Wounds", level=1, classes=("Bard", "Cleric")),
            Spell(name="Misty Step", level=2, classes=("Sorcerer", "Warlock", "Wizard")),
            Spell(name="Scorching Ray", level=2, classes=("Sorcerer", "Wizard")),
            Spell(name="Fireball", level=3, classes=("Sorcerer", "Wizard")),
            Spell(name="Spirit Guardians", level=3, classes=("Cleric",)),
        ]
    )
    weapons = WeaponRegistry(
        [Weapon(name="greatsword"), Weapon(name="dagger"), Weapon(name="longsword"), Weapon(name="handaxe")]
    )
    armors = ArmorRegistry([Armor(name="chain mail", base_ac=16, dex_cap="none")])
    shields = ShieldRegistry([Shield(name="shield")])
    return ContentLibrary(spells=spells, weapons=weapons, armors=armors, shields=shields)


def _service(enricher: Enricher | None = None, **kwargs) -> tuple[CharacterService, InMemoryCharacterRepository]:
    repository = InMemoryCharacterRepository()
    service = CharacterService(repository, enricher or RecordingEnricher(), _content(), **kwargs)
    return service, repository


def _request(name: str, **overrides) -> CreateCharacterRequest:
    values = dict(
        name=name,
        race="human",
        character_class="fighter",
        background="soldier",
        level=1,
        scores=STANDARD_ARRAY,
    )
    values.update(overrides)
    return CreateCharacterRequest(**values)


@pytest.mark.parametrize(
    "request_kwargs, expected_skills, expected_expertise",
    [
        (
            dict(race="hill dwarf", character_class="rogue", background="acolyte",
                 skills=["Acrobatics", "Deception", "Athletics", "Insight"]),
            ["Acrobatics", "Athletics", "Deception", "History", "Insight", "Religion"],
            ["Insight"],
        ),
        (
            dict(race="half orc", character_class="barbarian", background="acolyte",
                 skills=["Animal Handling", "Athletics"]),
            ["Animal Handling", "Athletics", "Insight", "Intimidation", "Religion"],
            [],
        ),
        (
            dict(race="high elf", character_class="rogue", background="sage",
                 skills=["Acrobatics", "Deception", "Insight", "Perception"]),
            ["Acrobatics", "Arcana", "Deception", "History", "Insight", "Perception"],
            ["Perception"],
        ),
        (
            dict(race="mountain dwarf", character_class="barbarian", background="soldier",
                 skills=["Athletics", "Survival"]),
            ["Athletics", "Intimidation", "Survival"],
            ["Athletics"],
        ),
        (
            dict(race="high elf", character_class="bard", background="outlander",
                 skills=["Acrobatics", "Stealth", "Performance"]),
            ["Acrobatics", "Athletics", "Perception", "Performance", "Stealth", "Survival"],
            [],
        ),
    ],
)
def test_skill_sources_merge_with_expertise(request_kwargs, expected_skills, expected_expertise) -> None:
    async def scenario() -> None:
        service, _ = _service()
        character = await service.create_character(_request("Skilled", **request_kwargs))
        assert character.proficient_skills() == expected_skills
        assert character.expert_skills() == expected_expertise

    asyncio.run(scenario())


def test_class_defaults_used_without_picks() -> None:
    async def scenario() -> None:
        service, _ = _service()
        character = await service.create_character(
            _request("Default", character_class="wizard", background="sage")
        )
        assert character.proficient_skills() == ["Arcana", "History"]
        assert character.expert_skills() == ["Arcana", "History"]

    asyncio.run(scenario())


def test_create_persists_and_derives() -> None:
    async def scenario() -> None:
        service, repository = _service()
        created = await service.create_character(
            _request("Aria", race="High-Elf", character_class="Wizard", background="Sage", level=5)
        )
        assert created.level == 5
        assert created.proficiency_bonus == 3
        assert created.character_class == "wizard"
        assert created.race == "high elf"
        assert created.max_spell_slots == {0: 4, 1: 4, 2: 3, 3: 2}

        stored = await repository.find_by_id("Aria")
        assert stored.to_dict() == created.to_dict()

    asyncio.run(scenario())


def test_create_validation() -> None:
    async def scenario() -> None:
        service, _ = _service()
        with pytest.raises(ValidationError):
            await service.create_character(_request("  "))
        with pytest.raises(ValidationError):
            await service.create_character(_request("Too High", level=21))
        with pytest.raises(ValidationError):
            await service.create_character(_request("Few Scores", scores={"STR": 10}))
        with pytest.raises(ValidationError):
            await service.create_character(_request("Odd Skill", skills=["Basket Weaving"]))

        await service.create_character(_request("Once"))
        with pytest.raises(RuleViolation):
            await service.create_character(_request("Once"))

        assert [character.name for character in await service.list_characters()] == ["Once"]

    asyncio.run(scenario())


def test_get_list_and_delete() -> None:
    async def scenario() -> None:
        service, _ = _service()
        await service.create_character(_request("Zed"))
        await service.create_character(_request("Abe"))

        assert [character.name for character in await service.list_characters()] == ["Abe", "Zed"]
        assert (await service.get_character("Zed")).name == "Zed"

        await service.delete_character("Zed")
        with pytest.raises(NotFoundError):
            await service.get_character("Zed")
        with pytest.raises(NotFoundError):
            await service.delete_character("Zed")

    asyncio.run(scenario())


def test_update_level_cascades() -> None:
    async def scenario() -> None:
        service, _ = _service()
        await service.create_character(_request("Mage", character_class="wizard", background="sage"))

        updated = await service.update_character_level("Mage", 9)
        assert updated.proficiency_bonus == 4
        assert updated.max_spell_slots[5] == 1
        assert updated.current_hit_points == updated.max_hit_points

        reloaded = await service.get_character("Mage")
        assert reloaded.level == 9
        assert reloaded.spell_save_dc == 8 + 4 + 1

        with pytest.raises(ValidationError):
            await service.update_character_level("Mage", 0)
        with pytest.raises(NotFoundError):
            await service.update_character_level("Ghost", 3)

    asyncio.run(scenario())


def test_two_handed_weapon_vacates_off_hand() -> None:
    async def scenario() -> None:
        enricher = RecordingEnricher()
        service, _ = _service(enricher)
        await service.create_character(_request("Brute"))

        await service.equip_item("Brute", "dagger", "weapon", "off hand")
        character = await service.equip_item("Brute", "Greatsword", "Weapon", "main hand")
        assert character.main_hand is not None and character.main_hand.two_handed
        assert character.main_hand.damage == "2d6 slashing"
        assert character.off_hand is None

        with pytest.raises(RuleViolation, match="two-handed"):
            await service.equip_item("Brute", "handaxe", "weapon", "off hand")

        stored = await service.get_character("Brute")
        assert stored.off_hand is None
        assert stored.main_hand is not None and stored.main_hand.name == "greatsword"

    asyncio.run(scenario())


def test_equip_errors() -> None:
    async def scenario() -> None:
        service, _ = _service()
        await service.create_character(_request("Knight"))

        with pytest.raises(NotFoundError):
            await service.equip_item("Knight", "vorpal sword", "weapon", "main hand")
        with pytest.raises(ValidationError):
            await service.equip_item("Knight", "dagger", "weapon", "belt")
        with pytest.raises(ValidationError):
            await service.equip_item("Knight", "dagger", "trinket")
        with pytest.raises(NotFoundError):
            await service.equip_item("Knight", "mithral", "armor")
        with pytest.raises(NotFoundError):
            await service.equip_item("Ghost", "dagger", "weapon", "main hand")

        await service.equip_item("Knight", "longsword", "weapon", "main hand")
        with pytest.raises(RuleViolation, match="main hand already occupied"):
            await service.equip_item("Knight", "dagger", "weapon", "main hand")

    asyncio.run(scenario())


def test_armor_and_shield_update_armor_class() -> None:
    async def scenario() -> None:
        enricher = RecordingEnricher()
        service, _ = _service(enricher)
        await service.create_character(_request("Tank"))

        character = await service.equip_item("Tank", "Chain Mail", "armor")
        assert character.armor is not None
        assert character.armor.category == "Heavy"
        assert character.armor_class == 16

        character = await service.equip_item("Tank", "shield", "SHIELD")
        assert character.armor_class == 18
        assert ("armor", "chain mail") in enricher.calls

        stored = await service.get_character("Tank")
        assert stored.armor_class == 18

    asyncio.run(scenario())


def test_learn_spell_rules() -> None:
    async def scenario() -> None:
        enricher = RecordingEnricher()
        service, _ = _service(enricher)
        await service.create_character(_request("Sorc", character_class="sorcerer", background="sage"))
        await service.create_character(_request("Wiz", character_class="wizard", background="sage"))
        await service.create_character(_request("Fighter"))

        character = await service.learn_spell("Sorc", "  MAGIC missile ")
        learned = character.known_spells["magic missile"]
        assert learned.school == "Evocation"
        assert ("spell", "magic missile") in enricher.calls

        with pytest.raises(RuleViolation, match="already knows"):
            await service.learn_spell("Sorc", "Magic Missile")
        with pytest.raises(RuleViolation, match="not listed"):
            await service.learn_spell("Sorc", "Cure Wounds")
        with pytest.raises(NotFoundError):
            await service.learn_spell("Sorc", "Power Word Kill")
        with pytest.raises(RuleViolation, match="prepares spells"):
            await service.learn_spell("Wiz", "Fire Bolt")
        with pytest.raises(RuleViolation, match="can't cast"):
            await service.learn_spell("Fighter", "Fire Bolt")

        stored = await service.get_character("Sorc")
        assert list(stored.known_spells) == ["magic missile"]

    asyncio.run(scenario())


def test_prepared_spell_limit() -> None:
    async def scenario() -> None:
        service, _ = _service()
        await service.create_character(
            _request(
                "Elminster",
                character_class="wizard",
                background="sage",
                level=4,
                scores={**STANDARD_ARRAY, "INT": 16},
            )
        )
        wizard = await service.get_character("Elminster")
        assert wizard.modifier("INT") == 3
        assert wizard.preparation_limit() == 5

        for spell in ("Magic Missile", "Shield", "Sleep", "Burning Hands", "Misty Step"):
            await service.prepare_spell("Elminster", spell)

        with pytest.raises(RuleViolation, match="limit of 5"):
            await service.prepare_spell("Elminster", "Fire Bolt")

        stored = await service.get_character("Elminster")
        assert len(stored.prepared_spells) == 5

    asyncio.run(scenario())


def test_prepare_spell_rules() -> None:
    async def scenario() -> None:
        service, _ = _service()
        await service.create_character(_request("Cleric", character_class="cleric", background="acolyte"))
        await service.create_character(_request("Bard", character_class="bard", background="entertainer"))
        await service.create_character(_request("Rogue", character_class="rogue"))

        with pytest.raises(RuleViolation, match="learns spells"):
            await service.prepare_spell("Bard", "Sleep")
        with pytest.raises(RuleViolation, match="can't cast"):
            await service.prepare_spell("Rogue", "Sleep")
        with pytest.raises(RuleViolation, match="higher level"):
            await service.prepare_spell("Cleric", "Spirit Guardians")
        with pytest.raises(RuleViolation, match="not listed"):
            await service.prepare_spell("Cleric", "Magic Missile")
        with pytest.raises(ValidationError):
            await service.prepare_spell("Cleric", " ")

        character = await service.prepare_spell("Cleric", "cure wounds")
        assert "cure wounds" in character.prepared_spells

    asyncio.run(scenario())


def test_enrichment_failure_still_persists() -> None:
    async def scenario() -> None:
        service, _ = _service(FailingEnricher())
        await service.create_character(_request("Unlucky"))
        character = await service.equip_item("Unlucky", "longsword", "weapon", "main hand")
        assert character.main_hand is not None
        assert character.main_hand.damage == ""

        stored = await service.get_character("Unlucky")
        assert stored.main_hand is not None and stored.main_hand.name == "longsword"

    asyncio.run(scenario())


def test_enrichment_timeout_keeps_unenriched_copy() -> None:
    async def scenario() -> None:
        service, _ = _service(SlowEnricher(), enrichment_timeout=0.05)
        await service.create_character(_request("Patient", character_class="sorcerer"))
        character = await service.learn_spell("Patient", "Fireball")
        assert character.known_spells["fireball"].school == ""

        stored = await service.get_character("Patient")
        assert "fireball" in stored.known_spells

    asyncio.run(scenario())


def test_cancelled_learn_spell_keeps_stored_state(tmp_path) -> None:
    async def scenario() -> None:
        storage = tmp_path / "characters.json"
        enricher = BlockingEnricher()
        service = CharacterService(FileCharacterRepository(storage), enricher, _content(), enrichment_timeout=60)
        await service.create_character(_request("Sorc", character_class="sorcerer"))

        task = asyncio.ensure_future(service.learn_spell("Sorc", "Fireball"))
        await asyncio.wait_for(enricher.started.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await FileCharacterRepository(storage).find_by_id("Sorc")
        assert stored.known_spells == {}

        character = await service.learn_spell("Sorc", "Magic Missile")
        assert "magic missile" in character.known_spells

    asyncio.run(scenario())


def test_cancelled_level_update_keeps_stored_state(tmp_path) -> None:
    async def scenario() -> None:
        storage = tmp_path / "characters.json"
        repository = StalledRepository(storage)
        service = CharacterService(repository, RecordingEnricher(), _content())
        await service.create_character(_request("Slow"))

        repository.stall = True
        task = asyncio.ensure_future(service.update_character_level("Slow", 7))
        await asyncio.wait_for(repository.stalled.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await FileCharacterRepository(storage).find_by_id("Slow")
        assert stored.level == 1

        repository.stall = False
        character = await service.update_character_level("Slow", 2)
        assert character.level == 2

    asyncio.run(scenario())


def test_list_skips_records_with_invalid_level(tmp_path, caplog) -> None:
    async def scenario() -> list:
        storage = tmp_path / "characters.json"
        service = CharacterService(FileCharacterRepository(storage), RecordingEnricher(), _content())
        await service.create_character(_request("Valid"))
        await service.create_character(_request("Edited"))

        records = json.loads(storage.read_text(encoding="utf-8"))
        for record in records:
            if record["name"] == "Edited":
                record["level"] = 25
        storage.write_text(json.dumps(records), encoding="utf-8")

        return await service.list_characters()

    with caplog.at_level(logging.WARNING, logger="chargen.service"):
        characters = asyncio.run(scenario())
    assert [character.name for character in characters] == ["Valid"]
    assert "Skipping stored character 'Edited'" in caplog.text
