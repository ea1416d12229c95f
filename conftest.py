from pathlib import Path

import pytest

from story_forge import dice
from story_forge.storage import Storage


@pytest.fixture(autouse=True)
def seeded_dice():
    """Every test starts from the same dice sequence."""
    dice.seed(1234)
    yield
    dice.seed(None)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def storage(data_dir: Path) -> Storage:
    return Storage(data_dir)
