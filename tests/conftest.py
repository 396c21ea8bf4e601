import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from fakes import FakeDatabase, T1, T3
from known_txns import KnownTxnIndex


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def known():
    """Index knowing T1 and T3 only."""
    return KnownTxnIndex([str(T1), str(T3)])
