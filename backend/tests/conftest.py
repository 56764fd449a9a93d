"""Shared fixtures for SwipeTree tests."""

import asyncio
import os
import sys

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import NavigationConfig
from metadata_store import MetadataStore


class FakeProbe:
    """In-memory stand-in for ImageProbe.

    ``existing`` ids resolve True; ``delays`` maps ids to seconds of latency;
    ``gates`` maps ids to events the probe waits on before answering.
    """

    def __init__(self, existing=(), delays=None, gates=None):
        self.existing = set(existing)
        self.delays = delays or {}
        self.gates = gates or {}
        self.calls = []

    def artifact_ref(self, person_id: str) -> str:
        return f"https://images.test/{person_id}.jpg"

    async def probe(self, person_id: str) -> bool:
        self.calls.append(person_id)
        if person_id in self.gates:
            await self.gates[person_id].wait()
        await asyncio.sleep(self.delays.get(person_id, 0))
        return person_id in self.existing

    async def locate(self, person_id: str):
        if await self.probe(person_id):
            return self.artifact_ref(person_id)
        return None


class FakeEditor:
    """Soft-edit collaborator returning a fixed result."""

    def __init__(self, result):
        self.result = result
        self.requests = []

    async def request_edit(self, person_id: str):
        self.requests.append(person_id)
        return self.result


@pytest.fixture
def config():
    return NavigationConfig()


@pytest.fixture
def store():
    return MetadataStore({}, namespace="test")


@pytest.fixture
def make_probe():
    """Factory for FakeProbe instances."""
    return FakeProbe
