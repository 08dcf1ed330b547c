import asyncio
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from aiohttp import web
from aiohttp import test_utils

from chargen.content import Armor, Spell, Weapon
from chargen.enrichment import NullEnricher, SRDApiClient, TokenBucket, slugify

PAYLOADS = {
    "spells/magic-missile": {
        "name": "Magic Missile",
        "range": "120 feet",
        "school": {"name": "Evocation"},
    },
    "equipment/greatsword": {
        "name": "Greatsword",
        "category_range": "Martial Melee",
        "damage": {"damage_dice": "2d6", "damage_type": {"name": "Slashing"}},
        "range": {"normal": 5},
        "properties": [{"name": "Heavy"}, {"name": "Two-Handed"}],
    },
    "equipment/longbow": {
        "name": "Longbow",
        "category_range": "Martial Ranged",
        "damage": {"damage_dice": "1d8", "damage_type": {"name": "Piercing"}},
        "range": {"normal": 150, "long": 600},
        "properties": [{"name": "Ammunition"}, {"name": "Two-Handed"}],
    },
    "equipment/chain-mail": {"name": "Chain Mail", "armor_category": "Heavy"},
}


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _api_app(requests: list) -> web.Application:
    async def handler(request: web.Request) -> web.Response:
        path = request.match_info["tail"]
        requests.append(path)
        if path == "spells/broken":
            return web.Response(text="not json", content_type="application/json")
        payload = PAYLOADS.get(path)
        if payload is None:
            return web.json_response({"error": "Not found"}, status=404)
        return web.json_response(payload)

    app = web.Application()
    app.router.add_get("/api/{tail:.*}", handler)
    return app


def test_slugify() -> None:
    assert slugify("Magic Missile") == "magic-missile"
    assert slugify(" chain mail ") == "chain-mail"


def test_token_bucket_spends_capacity_then_waits() -> None:
    async def scenario() -> None:
        clock = FakeClock()
        bucket = TokenBucket(capacity=2, rate=2, clock=clock)
        await bucket.acquire()
        await bucket.acquire()
        assert bucket.tokens < 1

        clock.now += 0.5
        await asyncio.wait_for(bucket.acquire(), timeout=1)
        clock.now += 10
        assert bucket.tokens == 2

    asyncio.run(scenario())


def test_token_bucket_sleeps_until_refill() -> None:
    async def scenario() -> None:
        bucket = TokenBucket(capacity=1, rate=20)
        loop = asyncio.get_running_loop()
        await bucket.acquire()
        started = loop.time()
        await bucket.acquire()
        assert loop.time() - started >= 0.03

    asyncio.run(scenario())


def test_token_bucket_acquire_can_be_cancelled() -> None:
    async def scenario() -> None:
        clock = FakeClock()
        bucket = TokenBucket(capacity=1, rate=0.01, clock=clock)
        await bucket.acquire()
        waiter = asyncio.ensure_future(bucket.acquire())
        await asyncio.sleep(0)
        waiter.cancel()
        try:
            await waiter
        except asyncio.CancelledError:
            pass
        assert waiter.cancelled()

    asyncio.run(scenario())


def test_client_enriches_records() -> None:
    async def scenario() -> None:
        requests: list = []
        async with test_utils.TestServer(_api_app(requests)) as server:
            async with SRDApiClient(str(server.make_url("/api/"))) as client:
                spell = Spell(name="Magic Missile", level=1)
                await client.enrich_spell(spell)
                assert (spell.range, spell.school) == ("120 feet", "Evocation")

                greatsword = Weapon(name="greatsword")
                await client.enrich_weapon(greatsword)
                assert greatsword.damage == "2d6 Slashing"
                assert greatsword.category == "Martial Melee"
                assert greatsword.range == "5 ft. (Melee)"
                assert greatsword.two_handed is True

                longbow = Weapon(name="longbow")
                await client.enrich_weapon(longbow)
                assert longbow.range == "150 ft. (Ranged)"

                armor = Armor(name="chain mail", base_ac=16, dex_cap="none")
                await client.enrich_armor(armor)
                assert armor.category == "Heavy"

        assert requests == [
            "spells/magic-missile",
            "equipment/greatsword",
            "equipment/longbow",
            "equipment/chain-mail",
        ]

    asyncio.run(scenario())


def test_client_leaves_records_untouched_on_failure() -> None:
    async def scenario() -> None:
        async with test_utils.TestServer(_api_app([])) as server:
            client = SRDApiClient(str(server.make_url("/api")))
            try:
                unknown = Weapon(name="vorpal sword", damage="1d4")
                await client.enrich_weapon(unknown)
                assert unknown.damage == "1d4"
                assert unknown.range == ""

                broken = Spell(name="broken", level=1, school="Necromancy")
                await client.enrich_spell(broken)
                assert broken.school == "Necromancy"
            finally:
                await client.close()

    asyncio.run(scenario())


def test_client_survives_unreachable_host() -> None:
    async def scenario() -> None:
        async with SRDApiClient("http://127.0.0.1:9/api/", timeout=0.5) as client:
            spell = Spell(name="Fireball", level=3)
            await client.enrich_spell(spell)
            assert spell.school == ""

    asyncio.run(scenario())


def test_null_enricher_is_a_no_op() -> None:
    async def scenario() -> None:
        enricher = NullEnricher()
        weapon = Weapon(name="club")
        await enricher.enrich_weapon(weapon)
        await enricher.close()
        assert weapon == Weapon(name="club")

    asyncio.run(scenario())
