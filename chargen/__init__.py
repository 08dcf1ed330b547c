"""Fifth-edition character generator: rules, characters, storage and presenters."""

from .characters import Ability, Character
from .config import Settings, configure_logging
from .content import Armor, ContentLibrary, ContentLoadError, Shield, Spell, Weapon
from .enrichment import Enricher, NullEnricher, SRDApiClient, TokenBucket
from .errors import CharacterError, NotFoundError, PersistenceError, RuleViolation, ValidationError
from .repository import CharacterRepository, FileCharacterRepository, InMemoryCharacterRepository
from .rules import CasterKind, SRDLoadError
from .service import CharacterService, CreateCharacterRequest, create_service

__all__ = [
    "Ability",
    "Armor",
    "CasterKind",
    "Character",
    "CharacterError",
    "CharacterRepository",
    "CharacterService",
    "ContentLibrary",
    "ContentLoadError",
    "CreateCharacterRequest",
    "Enricher",
    "FileCharacterRepository",
    "InMemoryCharacterRepository",
    "NotFoundError",
    "NullEnricher",
    "PersistenceError",
    "RuleViolation",
    "SRDApiClient",
    "SRDLoadError",
    "Settings",
    "Shield",
    "Spell",
    "TokenBucket",
    "ValidationError",
    "Weapon",
    "configure_logging",
    "create_service",
]
