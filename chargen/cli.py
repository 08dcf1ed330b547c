"""Command-line interface for creating and managing characters."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Dict, Optional, Sequence

from .config import Settings, configure_logging
from .content import ContentLoadError
from .errors import CharacterError
from .service import CharacterService, CreateCharacterRequest, create_service
from .sheet import format_list_line, render_text

__all__ = ["COMMANDS", "build_parser", "main", "run"]

log = logging.getLogger(__name__)

USAGE = """Usage:
  {prog} create -name NAME -race RACE -class CLASS -background BACKGROUND -level N -str N -dex N -con N -int N -wis N -cha N [-skills A,B]
  {prog} view -name CHARACTER_NAME
  {prog} list
  {prog} update-level -name CHARACTER_NAME -level N
  {prog} delete -name CHARACTER_NAME
  {prog} equip -name CHARACTER_NAME -weapon WEAPON_NAME -slot SLOT
  {prog} equip -name CHARACTER_NAME -armor ARMOR_NAME
  {prog} equip -name CHARACTER_NAME -shield SHIELD_NAME
  {prog} learn-spell -name CHARACTER_NAME -spell SPELL_NAME
  {prog} prepare-spell -name CHARACTER_NAME -spell SPELL_NAME
"""

PROG = "dnd-chargen"


def _add_name(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-name", "--name", required=True, help="Character name")


def _split_skills(value: str) -> list[str]:
    return [entry.strip() for entry in value.split(",") if entry.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROG, description="Fifth-edition character generator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create and save a new character")
    _add_name(create)
    create.add_argument("-race", "--race", default="Human")
    create.add_argument("-class", "--class", dest="character_class", default="Wizard")
    create.add_argument("-background", "--background", default="Acolyte")
    create.add_argument("-level", "--level", type=int, default=1, help="Initial level (1-20)")
    for ability in ("str", "dex", "con", "int", "wis", "cha"):
        create.add_argument(f"-{ability}", f"--{ability}", type=int, default=10, help=f"{ability.upper()} score")
    create.add_argument(
        "-skills",
        "--skills",
        type=_split_skills,
        default=[],
        help="Comma-separated skill proficiencies, e.g. Arcana,History",
    )

    view = subparsers.add_parser("view", help="Print a character sheet")
    _add_name(view)

    subparsers.add_parser("list", help="List saved characters")

    update = subparsers.add_parser("update-level", help="Change a character's level")
    _add_name(update)
    update.add_argument("-level", "--level", type=int, required=True, help="New level (1-20)")

    delete = subparsers.add_parser("delete", help="Delete a character")
    _add_name(delete)

    equip = subparsers.add_parser("equip", help="Equip a weapon, armor or shield")
    _add_name(equip)
    items = equip.add_mutually_exclusive_group(required=True)
    items.add_argument("-weapon", "--weapon")
    items.add_argument("-armor", "--armor")
    items.add_argument("-shield", "--shield")
    equip.add_argument("-slot", "--slot", default="", help="'main hand' or 'off hand' for weapons")

    for command, verb in (("learn-spell", "Learn"), ("prepare-spell", "Prepare")):
        spell_parser = subparsers.add_parser(command, help=f"{verb} a spell")
        _add_name(spell_parser)
        spell_parser.add_argument("-spell", "--spell", required=True, help="Spell name")

    return parser


async def _create(service: CharacterService, args: argparse.Namespace) -> None:
    request = CreateCharacterRequest(
        name=args.name,
        race=args.race,
        character_class=args.character_class,
        background=args.background,
        level=args.level,
        scores={
            "STR": args.str,
            "DEX": args.dex,
            "CON": args.con,
            "INT": args.int,
            "WIS": args.wis,
            "CHA": args.cha,
        },
        skills=args.skills,
    )
    try:
        character = await service.create_character(request)
    except CharacterError as exc:
        print(f"Error creating character: {exc}")
        return
    print(f"saved character {character.name}")


async def _view(service: CharacterService, args: argparse.Namespace) -> None:
    try:
        character = await service.get_character(args.name)
    except CharacterError as exc:
        print(exc)
        return
    print(render_text(character))


async def _list(service: CharacterService, args: argparse.Namespace) -> None:
    try:
        characters = await service.list_characters()
    except CharacterError as exc:
        print(f"Error listing characters: {exc}")
        return
    print("--- Character List ---")
    for character in characters:
        print(format_list_line(character))


async def _update_level(service: CharacterService, args: argparse.Namespace) -> None:
    try:
        character = await service.update_character_level(args.name, args.level)
    except CharacterError as exc:
        print(f"Error updating character '{args.name}': {exc}")
        return
    print(f"Success! Character '{character.name}' updated to Level {character.level}.")


async def _delete(service: CharacterService, args: argparse.Namespace) -> None:
    try:
        await service.delete_character(args.name)
    except CharacterError as exc:
        print(f"Error deleting character '{args.name}': {exc}")
        return
    print(f"deleted {args.name}")


async def _equip(service: CharacterService, args: argparse.Namespace) -> None:
    if args.weapon:
        item_type, item_name = "weapon", args.weapon
    elif args.armor:
        item_type, item_name = "armor", args.armor
    else:
        item_type, item_name = "shield", args.shield
    slot = " ".join(args.slot.lower().split())
    try:
        await service.equip_item(args.name, item_name, item_type, slot)
    except CharacterError as exc:
        print(exc)
        return
    if item_type == "weapon":
        print(f"Equipped weapon {item_name} to {slot}")
    else:
        print(f"Equipped {item_type} {item_name}")


async def _learn_spell(service: CharacterService, args: argparse.Namespace) -> None:
    try:
        await service.learn_spell(args.name, args.spell)
    except CharacterError as exc:
        print(exc)
        return
    print(f"Learned spell {args.spell}")


async def _prepare_spell(service: CharacterService, args: argparse.Namespace) -> None:
    try:
        await service.prepare_spell(args.name, args.spell)
    except CharacterError as exc:
        print(exc)
        return
    print(f"Prepared spell {args.spell}")


Handler = Callable[[CharacterService, argparse.Namespace], Awaitable[None]]

COMMANDS: Dict[str, Handler] = {
    "create": _create,
    "view": _view,
    "list": _list,
    "update-level": _update_level,
    "delete": _delete,
    "equip": _equip,
    "learn-spell": _learn_spell,
    "prepare-spell": _prepare_spell,
}


async def _execute(service: CharacterService, args: argparse.Namespace) -> None:
    log.debug("Running command %s", args.command)
    try:
        await COMMANDS[args.command](service, args)
    finally:
        await service.aclose()


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    settings: Optional[Settings] = None,
    service_factory: Callable[[Settings], CharacterService] = create_service,
) -> int:
    """Run one command and return the process exit code.

    Usage problems with the command itself print the usage text and return 1;
    missing or malformed flags make argparse exit with status 2.
    """

    arguments = list(sys.argv[1:] if argv is None else argv)
    if not arguments or arguments[0] not in COMMANDS:
        print(USAGE.format(prog=PROG))
        return 1

    args = build_parser().parse_args(arguments)
    if args.command == "equip" and args.weapon and not args.slot.strip():
        print("Error: When equipping a weapon, the -slot (e.g., 'main hand') is required.")
        return 2

    try:
        if settings is None:
            settings = Settings.from_env()
        configure_logging(settings.log_level or logging.WARNING)
        service = service_factory(settings)
    except (ContentLoadError, ValueError, OSError) as exc:
        print(f"Initialization Error: {exc}")
        return 1

    asyncio.run(_execute(service, args))
    return 0


def run() -> None:
    sys.exit(main())
