"""Best-effort enrichment of catalog entries from the public 5e SRD API."""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from typing import Callable, Mapping, Optional

import aiohttp

from .content.models import Armor, Spell, Weapon

__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_RATE_LIMIT",
    "Enricher",
    "NullEnricher",
    "SRDApiClient",
    "TokenBucket",
    "slugify",
]

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.dnd5eapi.co/api/"
DEFAULT_RATE_LIMIT = 8
DEFAULT_TIMEOUT = 5.0
MELEE_REACH = 5


def slugify(name: str) -> str:
    return name.strip().replace(" ", "-").lower()


class Enricher(abc.ABC):
    """Fills descriptive fields of a record in place.

    Implementations never raise for network or decoding problems; the record
    is simply left as it was.
    """

    @abc.abstractmethod
    async def enrich_spell(self, spell: Spell) -> None:
        """Fill ``range`` and ``school``."""

    @abc.abstractmethod
    async def enrich_weapon(self, weapon: Weapon) -> None:
        """Fill ``damage``, ``category``, ``range`` and ``two_handed``."""

    @abc.abstractmethod
    async def enrich_armor(self, armor: Armor) -> None:
        """Fill ``category``."""

    async def close(self) -> None:
        return None


class NullEnricher(Enricher):
    """Enricher used when running offline."""

    async def enrich_spell(self, spell: Spell) -> None:
        return None

    async def enrich_weapon(self, weapon: Weapon) -> None:
        return None

    async def enrich_armor(self, armor: Armor) -> None:
        return None


class TokenBucket:
    """Asyncio token bucket holding ``capacity`` tokens refilled at ``rate`` per second."""

    def __init__(
        self,
        capacity: int = DEFAULT_RATE_LIMIT,
        rate: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.rate = float(rate if rate is not None else capacity)
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = asyncio.Lock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""

        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep((1 - self._tokens) / self.rate)


class SRDApiClient(Enricher):
    """Enricher backed by the dnd5eapi.co REST endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        rate_limiter: TokenBucket | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._rate_limiter = rate_limiter or TokenBucket()
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "SRDApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _get_resource(self, endpoint: str) -> Optional[Mapping[str, object]]:
        await self._rate_limiter.acquire()
        url = self._base_url + endpoint
        try:
            async with self._get_session().get(url, timeout=self._timeout) as response:
                if response.status != 200:
                    log.debug("Enrichment request %s returned HTTP %s", url, response.status)
                    return None
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            log.warning("Enrichment request %s failed: %s", url, exc)
            return None
        if not isinstance(payload, Mapping):
            log.debug("Enrichment response for %s was not an object", url)
            return None
        return payload

    async def enrich_spell(self, spell: Spell) -> None:
        if not spell.name:
            return
        payload = await self._get_resource(f"spells/{slugify(spell.name)}")
        if payload is None:
            return
        spell.range = str(payload.get("range") or "")
        school = payload.get("school")
        spell.school = str(school.get("name") or "") if isinstance(school, Mapping) else ""

    async def enrich_weapon(self, weapon: Weapon) -> None:
        if not weapon.name:
            return
        payload = await self._get_resource(f"equipment/{slugify(weapon.name)}")
        if payload is None:
            return
        damage = payload.get("damage")
        if isinstance(damage, Mapping) and damage.get("damage_dice"):
            dice = str(damage["damage_dice"])
            damage_type = damage.get("damage_type")
            type_name = damage_type.get("name") if isinstance(damage_type, Mapping) else None
            weapon.damage = f"{dice} {type_name}" if type_name else dice

        weapon.category = str(payload.get("category_range") or "")

        reach = payload.get("range")
        normal = reach.get("normal") if isinstance(reach, Mapping) else None
        if isinstance(normal, int) and normal > MELEE_REACH:
            weapon.range = f"{normal} ft. (Ranged)"
        else:
            weapon.range = f"{MELEE_REACH} ft. (Melee)"

        properties = payload.get("properties")
        if not isinstance(properties, list):
            properties = []
        weapon.two_handed = any(
            isinstance(prop, Mapping) and prop.get("name") == "Two-Handed"
            for prop in properties
        )

    async def enrich_armor(self, armor: Armor) -> None:
        if not armor.name:
            return
        payload = await self._get_resource(f"equipment/{slugify(armor.name)}")
        if payload is None:
            return
        armor.category = str(payload.get("armor_category") or "")
