"""
Pytest fixtures for fichas tests.

Provides seeded dice, sample sheets and in-memory stores.
"""

import random

import pytest

from fichas.state import Character, MemoryStore


class FixedDie(random.Random):
    """random.Random whose randint always returns the same face."""

    def __init__(self, face: int):
        super().__init__(0)
        self.face = face

    def randint(self, a, b):
        return self.face


@pytest.fixture
def rng():
    """Seeded generator for reproducible rolls."""
    return random.Random(1234)


@pytest.fixture
def die():
    """Factory for a die that always lands on the given face."""
    return FixedDie


@pytest.fixture
def character():
    """Sample sheet with one entry of each kind."""
    return Character.model_validate({
        "name": "Aria",
        "attributes": {"QI": 1, "FOR": 2, "DEX": 3, "VIG": 2},
        "mental": 0,
        "items": {
            "espada-elfica": {
                "name": "Espada Élfica",
                "type": "ACTIVE",
                "attributeBase": "FOR",
                "modMode": "ADD",
                "modValue": 2,
            },
            "amuleto": {
                "name": "Amuleto",
                "type": "PASSIVE",
                "attributeBase": None,
                "modMode": "ADD",
                "modValue": 1,
            },
        },
        "advantages": {
            "furia": {
                "name": "Fúria",
                "type": "PASSIVE",
                "attributeBase": "FOR",
                "modMode": "MULT",
                "modValue": 0.5,
            },
            "agil": {
                "name": "Ágil",
                "type": "PASSIVE",
                "attributeBase": "DEX",
                "modMode": "ADD",
                "modValue": 3,
            },
        },
        "disadvantages": {
            "manco": {
                "name": "Manco",
                "type": "PASSIVE",
                "attributeBase": "MOVEMENT",
                "modMode": "ADD",
                "modValue": -1,
            },
        },
    })


@pytest.fixture
def memory_store():
    """In-memory store for testing."""
    return MemoryStore()


@pytest.fixture
def populated_store(character):
    """Store holding the sample sheet as 'aria' plus one assignment."""
    return MemoryStore({
        "sheets": {"aria": character.to_record()},
        "assignments": {"player-1": {"sheetId": "aria"}},
    })
