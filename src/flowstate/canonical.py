"""Canonical form of workflow states.

The canonical form is the hashing input: a tree of plain JSON-compatible
values whose structure depends only on the semantically meaningful content of
a workflow. Layout fields are dropped, every mapping is re-emitted with sorted
keys, edges are put into a total order, and floats that hold integral values
collapse to integers so that ``3`` and ``3.0`` describe the same workflow.

Only plain data is accepted. Cycles, sets, bytes, callables and any other
object raise :class:`~flowstate.errors.CanonicalizationError` with the path of
the offending value; nothing is silently skipped.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Final, TypeAlias

from flowstate.errors import CanonicalizationError
from flowstate.digest import encode_canonical
from flowstate.types import WorkflowState

__all__ = [
    "BLOCK_FIELDS",
    "EDGE_FIELDS",
    "MAX_NESTING_DEPTH",
    "PRESENTATION_FIELDS",
    "CanonicalValue",
    "Canonicalizer",
    "canonicalize",
]

CanonicalValue: TypeAlias = (
    "None | bool | int | float | str | list[CanonicalValue] | dict[str, CanonicalValue]"
)

BLOCK_FIELDS: Final[tuple[str, ...]] = (
    "id",
    "type",
    "metadata",
    "config",
    "subBlocks",
    "outputs",
    "enabled",
    "advancedMode",
)
"""Block fields emitted first, in this order, for every block."""

EDGE_FIELDS: Final[tuple[str, ...]] = (
    "id",
    "source",
    "target",
    "sourceHandle",
    "targetHandle",
)

PRESENTATION_FIELDS: Final[frozenset[str]] = frozenset(
    {"position", "horizontalHandles", "isWide", "height", "layout"}
)
"""Block fields that only affect rendering and never reach the canonical form."""

_BLOCK_MAPPING_FIELDS: Final[frozenset[str]] = frozenset(
    {"metadata", "config", "subBlocks", "outputs"}
)

# Containers deeper than this are rejected before the interpreter stack runs out.
MAX_NESTING_DEPTH: Final[int] = 128

# Largest magnitude below which every integral float maps to a unique int.
_EXACT_INTEGER_LIMIT: Final[float] = float(2**53)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _index(path: str, index: int) -> str:
    return f"{path}[{index}]"


def _text(value: str, path: str) -> str:
    """Return ``value`` if it encodes as UTF-8; lone surrogates do not."""

    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise CanonicalizationError(
            "string is not valid Unicode text", path=path or None
        ) from exc
    return value


class Canonicalizer:
    """Build the canonical form of a workflow state.

    An instance tracks the containers on the current walk path to detect
    circular references, so it must not be shared between threads. Use
    :func:`canonicalize` for one-off calls.
    """

    def __init__(self) -> None:
        self._active: set[int] = set()

    def canonicalize_state(
        self, state: WorkflowState | Mapping[str, object]
    ) -> dict[str, CanonicalValue]:
        """Return the canonical record for a complete workflow state.

        Args:
            state: Workflow state with ``blocks``, ``edges``, ``loops`` and
                ``parallels``. Absent or ``None`` collections count as empty;
                ``variables`` is emitted only when non-empty. Other root keys
                are store metadata and are ignored.

        Returns:
            Canonical record with the root fields in a fixed order.

        Raises:
            CanonicalizationError: If any part of the state is not plain data.
        """

        if not isinstance(state, Mapping):
            raise CanonicalizationError(
                f"workflow state must be a mapping, got {type(state).__name__}"
            )

        try:
            with self._enter(state, ""):
                canonical: dict[str, CanonicalValue] = {
                    "blocks": self._blocks(state.get("blocks"), "blocks"),
                    "edges": self._edges(state.get("edges"), "edges"),
                    "loops": self._mapping(state.get("loops"), "loops"),
                    "parallels": self._mapping(state.get("parallels"), "parallels"),
                }
                variables = self._mapping(state.get("variables"), "variables")
                if variables:
                    canonical["variables"] = variables
        except RecursionError as exc:
            raise CanonicalizationError("value nests too deeply") from exc
        return canonical

    def canonicalize_value(self, value: object, path: str = "") -> CanonicalValue:
        """Canonicalize an arbitrary nested value.

        Mappings are re-emitted with sorted keys, lists and tuples keep their
        order, and scalars pass through apart from the float rule described
        in the module docstring.
        """

        if isinstance(value, str):
            return _text(value, path)
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, int):
            return int(value)
        if isinstance(value, float):
            return self._number(value, path)
        if isinstance(value, Mapping):
            return self._mapping(value, path)
        if isinstance(value, (list, tuple)):
            with self._enter(value, path):
                return [
                    self.canonicalize_value(item, _index(path, position))
                    for position, item in enumerate(value)
                ]
        raise CanonicalizationError(
            f"unsupported value of type {type(value).__name__}", path=path or None
        )

    @contextmanager
    def _enter(self, container: object, path: str) -> Iterator[None]:
        """Mark ``container`` as being walked for the duration of the block."""

        marker = id(container)
        if marker in self._active:
            raise CanonicalizationError("circular reference", path=path or None)
        if len(self._active) >= MAX_NESTING_DEPTH:
            raise CanonicalizationError("value nests too deeply", path=path or None)
        self._active.add(marker)
        try:
            yield
        finally:
            self._active.discard(marker)

    def _number(self, value: float, path: str) -> int | float:
        if not math.isfinite(value):
            raise CanonicalizationError(
                f"non-finite number {value!r} cannot be hashed", path=path or None
            )
        if value.is_integer() and abs(value) < _EXACT_INTEGER_LIMIT:
            return int(value)
        return value

    def _expect_mapping(self, value: object, path: str) -> Mapping[str, object]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise CanonicalizationError(
                f"expected a mapping, got {type(value).__name__}", path=path or None
            )
        return value

    def _sorted_keys(self, mapping: Mapping[str, object], path: str) -> list[str]:
        for key in mapping:
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"mapping keys must be strings, got {type(key).__name__}",
                    path=path or None,
                )
            _text(key, path)
        return sorted(mapping)

    def _mapping(self, value: object, path: str) -> dict[str, CanonicalValue]:
        mapping = self._expect_mapping(value, path)
        with self._enter(mapping, path):
            return {
                key: self.canonicalize_value(mapping[key], _join(path, key))
                for key in self._sorted_keys(mapping, path)
            }

    def _blocks(self, value: object, path: str) -> dict[str, CanonicalValue]:
        blocks = self._expect_mapping(value, path)
        with self._enter(blocks, path):
            return {
                block_id: self._block(blocks[block_id], _join(path, block_id))
                for block_id in self._sorted_keys(blocks, path)
            }

    def _block(self, value: object, path: str) -> dict[str, CanonicalValue]:
        if not isinstance(value, Mapping):
            raise CanonicalizationError(
                f"block must be a mapping, got {type(value).__name__}", path=path
            )

        record: dict[str, CanonicalValue] = {}
        with self._enter(value, path):
            for field in BLOCK_FIELDS:
                field_path = _join(path, field)
                if field in _BLOCK_MAPPING_FIELDS:
                    record[field] = self._mapping(value.get(field), field_path)
                else:
                    record[field] = self.canonicalize_value(
                        value.get(field), field_path
                    )

            for key in self._sorted_keys(value, path):
                if key in record or key in PRESENTATION_FIELDS:
                    continue
                record[key] = self.canonicalize_value(value[key], _join(path, key))
        return record

    def _edges(self, value: object, path: str) -> list[dict[str, str | None]]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise CanonicalizationError(
                f"edges must be a list, got {type(value).__name__}", path=path
            )

        with self._enter(value, path):
            records = [
                self._edge(edge, _index(path, position))
                for position, edge in enumerate(value)
            ]
        records.sort(key=_edge_order)
        return records

    def _edge(self, value: object, path: str) -> dict[str, str | None]:
        if not isinstance(value, Mapping):
            raise CanonicalizationError(
                f"edge must be a mapping, got {type(value).__name__}", path=path
            )

        record: dict[str, str | None] = {}
        for field in EDGE_FIELDS:
            item = value.get(field)
            if item is not None and not isinstance(item, str):
                raise CanonicalizationError(
                    f"edge field must be a string, got {type(item).__name__}",
                    path=_join(path, field),
                )
            record[field] = None if item is None else _text(item, _join(path, field))
        return record


def _edge_order(edge: dict[str, str | None]) -> tuple[str, ...]:
    """Total order over edge records; the encoding breaks remaining ties."""

    return (
        edge["source"] or "",
        edge["target"] or "",
        edge["sourceHandle"] or "",
        edge["targetHandle"] or "",
        edge["id"] or "",
        encode_canonical(edge),
    )


def canonicalize(
    state: WorkflowState | Mapping[str, object],
) -> dict[str, CanonicalValue]:
    """Return the canonical form of ``state``.

    The input is never mutated; every container in the result is new.

    Raises:
        CanonicalizationError: If the state contains a cycle, nests deeper
            than ``MAX_NESTING_DEPTH`` containers, or holds a value that is
            not plain structured data.
    """

    return Canonicalizer().canonicalize_state(state)
