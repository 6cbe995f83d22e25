import logging
import os
import pathlib
import sys
from decimal import Decimal

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import coursepass`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from coursepass.config import CoursePassConfig, get_config_manager  # noqa: E402
from coursepass.runtime import Runtime  # noqa: E402

FIXED_SEED = bytes(range(32))


@pytest.fixture(autouse=True)
def _isolated_config_and_logging(monkeypatch):
    """Fresh configuration and no leftover log handlers for every test."""
    for name in list(os.environ):
        if name.startswith("COURSEPASS_"):
            monkeypatch.delenv(name, raising=False)
    get_config_manager().reset()
    yield
    get_config_manager().reset()
    root = logging.getLogger("coursepass")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


@pytest.fixture
def runtime() -> Runtime:
    """Deterministic runtime: fixed seed, capacity 3, existential deposit 1."""
    return Runtime.build(CoursePassConfig(), seed=FIXED_SEED)


@pytest.fixture
def engine(runtime):
    return runtime.engine


@pytest.fixture
def store(runtime):
    return runtime.store


@pytest.fixture
def ledger(runtime):
    return runtime.ledger


@pytest.fixture
def funded(runtime):
    """Runtime with alice, bob and carol holding 1000 each."""
    for account in ("alice", "bob", "carol"):
        runtime.ledger.set_balance(account, Decimal("1000"))
    return runtime
