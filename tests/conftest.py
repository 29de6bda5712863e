"""
Shared fixtures for the vegov test suite.

The `chain` fixture drives a GovernanceEngine with an explicit clock and
block height: every executed operation lands in its own block.
"""

import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from vegov.engine import GovernanceEngine
from harness import Chain, make_config, make_host


@pytest.fixture
def host():
    return make_host()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def engine(config, host):
    return GovernanceEngine(config, host)


@pytest.fixture
def chain(engine):
    return Chain(engine)
