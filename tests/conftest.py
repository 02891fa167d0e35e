"""Pytest configuration for the Tribe test-suite."""

import pytest

from tribes.network.gateway import InMemoryRelayNetwork
from tribes.persistence.membership_store import InMemoryMembershipStore


@pytest.fixture
def network() -> InMemoryRelayNetwork:
    return InMemoryRelayNetwork()


@pytest.fixture
def store() -> InMemoryMembershipStore:
    return InMemoryMembershipStore()
