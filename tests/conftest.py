"""
Pytest configuration and shared fixtures for the call success report tests.

Records are plain dicts, the same shape the Cassandra driver returns with
dict_factory, so no cluster is needed.
"""

from typing import Any, Dict, List

import pytest

from tests.helpers import make_record


@pytest.fixture
def two_records() -> List[Dict[str, Any]]:
    """One short successful call and one minute-long failed call from 555."""
    return [
        make_record("0:0:10", "555", True),
        make_record("0:1:00", "555", False),
    ]


@pytest.fixture
def mixed_records() -> List[Dict[str, Any]]:
    return [
        make_record("0:0:10", "555", True),
        make_record("0:1:00", "555", False),
        make_record("0:0:45", "666", True),
        make_record("1:0:0", "555", True),
        make_record("0:0:30", "5551", False),
        make_record("0:90:90", "666", True),
        make_record("0:0:0", "555", False),
    ]
