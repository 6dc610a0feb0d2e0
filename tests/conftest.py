"""Pytest configuration and fixtures."""

from __future__ import annotations

import copy
import os
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

# Ensure src/ is on sys.path for tests so the src layout is used during test runs
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

AGENT_BLOCK: dict[str, Any] = {
    "id": "block1",
    "type": "agent",
    "position": {"x": 100, "y": 200},
    "metadata": {"id": "agent", "name": "Test Agent"},
    "config": {"params": {"prompt": "Hello"}},
    "subBlocks": {},
    "outputs": {},
    "enabled": True,
    "horizontalHandles": True,
    "isWide": False,
    "advancedMode": False,
    "height": "0",
}


class FakeClock:
    """Deterministic replacement for ``datetime.now(timezone.utc)``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def agent_state() -> Callable[..., dict[str, Any]]:
    """Build a one-agent workflow state; keyword arguments override block fields."""

    def _build(**block_overrides: Any) -> dict[str, Any]:
        block = copy.deepcopy(AGENT_BLOCK)
        block.update(block_overrides)
        return {
            "blocks": {"block1": block},
            "edges": [{"id": "edge1", "source": "block1", "target": "block2"}],
            "loops": {},
            "parallels": {},
        }

    return _build


@pytest.fixture
def complex_state() -> dict[str, Any]:
    """Workflow state with nested sub-blocks, loops and parallels."""

    return {
        "blocks": {
            "block1": {
                "id": "block1",
                "type": "agent",
                "position": {"x": 100, "y": 200},
                "metadata": {"id": "agent", "name": "Complex Agent"},
                "config": {
                    "params": {
                        "prompt": "Hello",
                        "model": "gpt-4",
                        "temperature": 0.7,
                        "tools": ["search", "calculator"],
                    }
                },
                "subBlocks": {
                    "prompt": {"id": "prompt", "type": "short-input", "value": "Test prompt"},
                    "model": {"id": "model", "type": "short-input", "value": "gpt-4"},
                },
                "outputs": {
                    "response": {"type": "string", "description": "Agent response"},
                },
                "enabled": True,
                "horizontalHandles": True,
                "isWide": False,
                "advancedMode": True,
                "height": "200",
            },
        },
        "edges": [
            {"id": "edge1", "source": "block1", "target": "block2", "sourceHandle": "output"},
        ],
        "loops": {
            "loop1": {
                "id": "loop1",
                "type": "loop",
                "config": {"iterationVariable": "item", "maxIterations": 10},
            },
        },
        "parallels": {
            "parallel1": {
                "id": "parallel1",
                "type": "parallel",
                "config": {"maxConcurrency": 3},
            },
        },
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
