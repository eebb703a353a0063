import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import daovsdao`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

# Shared test helpers (addresses.py) live beside this file.
_TESTS_DIR = pathlib.Path(__file__).resolve().parent
if str(_TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(_TESTS_DIR))

from daovsdao.certificate import SponsorshipCertificate  # noqa: E402
from daovsdao.clock import ManualClock  # noqa: E402
from daovsdao.config import ConfigManager, GameConfig  # noqa: E402
from daovsdao.game import DaoVsDao  # noqa: E402

from addresses import OWNER, USER1, USER2, USER3  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless DVD_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('DVD_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set DVD_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Fresh config singleton and no DVD_* overrides leaking in from the shell."""
    for key in list(os.environ):
        if key.startswith("DVD_") and key != "DVD_RUN_SLOW":
            monkeypatch.delenv(key, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def clock():
    return ManualClock(0)


@pytest.fixture
def config():
    return GameConfig()


@pytest.fixture
def game(clock, config):
    return DaoVsDao(OWNER, config=config, clock=clock)


@pytest.fixture
def certificates(game):
    """Certificate registry wired to the game in both directions."""
    registry = SponsorshipCertificate(OWNER)
    registry.set_sponsorship_certificate_manager(OWNER, game)
    game.set_sponsorship_certificate_emitter(OWNER, registry)
    return registry


@pytest.fixture
def three_players(game):
    """Realm 0 with user1 at the apex and user2/user3 on row 1, all placed at t=0."""
    game.add_realm(OWNER)
    game.place_user(USER1, (0, 0, 0))
    game.place_user(USER2, (0, 1, 0))
    game.place_user(USER3, (0, 1, 1))
    return game
