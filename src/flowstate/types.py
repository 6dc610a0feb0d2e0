"""Type definitions for workflow state payloads."""

from __future__ import annotations

from typing import TypedDict


class Position(TypedDict):
    """Canvas coordinates of a block."""

    x: float
    y: float


class SubBlockState(TypedDict, total=False):
    """Per-field configuration nested inside a block."""

    id: str
    type: str
    value: object


class BlockState(TypedDict, total=False):
    """One node of the workflow graph."""

    id: str
    type: str
    metadata: dict[str, object]
    config: dict[str, object]
    subBlocks: dict[str, SubBlockState]
    outputs: dict[str, object]
    enabled: bool
    advancedMode: bool
    # Presentation only, never hashed.
    position: Position
    horizontalHandles: bool
    isWide: bool
    height: float | str


class EdgeState(TypedDict, total=False):
    """Directed connection between two block ports."""

    id: str
    source: str
    target: str
    sourceHandle: str | None
    targetHandle: str | None


class LoopConfig(TypedDict, total=False):
    """Loop construct keyed by its identifier."""

    id: str
    type: str
    config: dict[str, object]


class ParallelConfig(TypedDict, total=False):
    """Parallel construct keyed by its identifier."""

    id: str
    type: str
    config: dict[str, object]


class WorkflowState(TypedDict, total=False):
    """Complete workflow graph handed over by the editor."""

    blocks: dict[str, BlockState]
    edges: list[EdgeState]
    loops: dict[str, LoopConfig]
    parallels: dict[str, ParallelConfig]
    variables: dict[str, object]
