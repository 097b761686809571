import pytest

from rules.character import new_game_state
from rules.reference import ReferenceCatalog


class ScriptedRng:
    """Returns queued values in order, then the low bound of each request."""

    def __init__(self, values=()):
        self.values = list(values)
        self.calls = []

    def randint(self, low, high):
        self.calls.append((low, high))
        if self.values:
            return self.values.pop(0)
        return low


@pytest.fixture(scope="session")
def catalog() -> ReferenceCatalog:
    return ReferenceCatalog.load()


@pytest.fixture
def fighter_state(catalog):
    # seed 2 selects the single-rat gate variant
    return new_game_state(catalog, "fighter", seed=2)


@pytest.fixture
def wizard_state(catalog):
    return new_game_state(catalog, "wizard", seed=2)


@pytest.fixture
def cleric_state(catalog):
    return new_game_state(catalog, "cleric", seed=2)
