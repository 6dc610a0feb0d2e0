"""Command-line utilities for flowstate."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from .canonical import canonicalize
from .config_loader import FlowstateConfig, load_config, resolve_log_level
from .digest import encode_canonical
from .errors import StateHashError
from .logging_pipeline import configure_structured_logging, shutdown_listeners
from .settings import FlowstateSettings, get_settings
from .snapshots import (
    LedgerSnapshotStore,
    Signer,
    SnapshotService,
    SnapshotStoreError,
    validate_ledger,
)
from .state_hash import compute_state_hash

_Command = Callable[[argparse.Namespace, FlowstateConfig, FlowstateSettings], int]


def _read_stdin() -> str | None:
    """Read JSON payload from stdin if available."""
    try:
        if sys.stdin and not sys.stdin.isatty():
            return sys.stdin.read()
    except IOError as e:
        print(f"Error reading stdin: {e}", file=sys.stderr)
    return None


def _load_state(path: str | None) -> dict[str, object]:
    """Load a workflow state from file or stdin."""
    if path:
        return _parse_json_dict(Path(path).read_text(encoding="utf-8"))
    stdin_payload = _read_stdin()
    if stdin_payload:
        return _parse_json_dict(stdin_payload)
    raise ValueError("No input provided. Use --input or pipe JSON via stdin.")


def _parse_json_dict(payload: str) -> dict[str, object]:
    """Parse a JSON string and ensure the result is a dictionary."""

    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("Input JSON must be an object at the top level.")
    return data


def _emit(args: argparse.Namespace, text: str) -> None:
    if not args.quiet:
        print(text)


def _signer(settings: FlowstateSettings) -> Signer:
    key = settings.signing_key_bytes
    if key is None:
        raise ValueError(
            "FLOWSTATE_SIGNING_KEY is required to use the snapshot ledger."
        )
    return Signer(key)


def _ledger_store(
    args: argparse.Namespace, config: FlowstateConfig, settings: FlowstateSettings
) -> LedgerSnapshotStore:
    return LedgerSnapshotStore(
        args.ledger or config.ledger.path,
        _signer(settings),
        include_prev_hash=config.ledger.include_prev_hash,
    )


def _cmd_hash(
    args: argparse.Namespace, config: FlowstateConfig, settings: FlowstateSettings
) -> int:
    _emit(args, compute_state_hash(_load_state(args.input)))
    return 0


def _cmd_canonical(
    args: argparse.Namespace, config: FlowstateConfig, settings: FlowstateSettings
) -> int:
    _emit(args, encode_canonical(canonicalize(_load_state(args.input))))
    return 0


def _cmd_snapshot(
    args: argparse.Namespace, config: FlowstateConfig, settings: FlowstateSettings
) -> int:
    state = _load_state(args.input)
    service = SnapshotService(store=_ledger_store(args, config, settings))
    record, is_new = service.create_snapshot_with_deduplication(args.workflow_id, state)
    _emit(
        args,
        json.dumps(
            {"id": record.id, "state_hash": record.state_hash, "is_new": is_new},
            separators=(",", ":"),
        ),
    )
    return 0


def _cmd_validate(
    args: argparse.Namespace, config: FlowstateConfig, settings: FlowstateSettings
) -> int:
    public_key_hex: str | None = args.public_key
    if not public_key_hex:
        public_key_hex = _signer(settings).signing_key
    ledger_path = args.ledger or config.ledger.path
    ok, first_bad_line = validate_ledger(
        ledger_path,
        public_key_hex,
        include_prev_hash=config.ledger.include_prev_hash,
    )
    _emit(
        args,
        json.dumps(
            {"valid": ok, "first_bad_line": None if ok else first_bad_line},
            separators=(",", ":"),
        ),
    )
    return 0 if ok else 1


def _cmd_cleanup(
    args: argparse.Namespace, config: FlowstateConfig, settings: FlowstateSettings
) -> int:
    days = args.older_than_days
    if days is None:
        days = config.retention.older_than_days
    service = SnapshotService(store=_ledger_store(args, config, settings))
    deleted = service.cleanup_orphaned_snapshots(days, args.keep or ())
    _emit(args, json.dumps({"deleted": deleted}, separators=(",", ":")))
    return 0


_COMMANDS: dict[str, _Command] = {
    "hash": _cmd_hash,
    "canonical": _cmd_canonical,
    "snapshot": _cmd_snapshot,
    "validate": _cmd_validate,
    "cleanup": _cmd_cleanup,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowstate",
        description="Fingerprint workflow states and manage the snapshot ledger.",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Quiet mode: suppress output, just return exit code.",
    )
    parser.add_argument("--log-level", help="Override the configured log level.")
    parser.add_argument("--config", help="Path to a YAML or JSON configuration file.")

    commands = parser.add_subparsers(dest="command", required=True)

    hash_parser = commands.add_parser(
        "hash", help="Print the content hash of a workflow state."
    )
    hash_parser.add_argument(
        "--input", "-i", help="Path to a state JSON file. If omitted, reads stdin."
    )

    canonical_parser = commands.add_parser(
        "canonical", help="Print the canonical encoding of a workflow state."
    )
    canonical_parser.add_argument(
        "--input", "-i", help="Path to a state JSON file. If omitted, reads stdin."
    )

    snapshot_parser = commands.add_parser(
        "snapshot", help="Store a workflow state in the ledger unless unchanged."
    )
    snapshot_parser.add_argument("--workflow-id", required=True)
    snapshot_parser.add_argument(
        "--input", "-i", help="Path to a state JSON file. If omitted, reads stdin."
    )
    snapshot_parser.add_argument("--ledger", help="Ledger path override.")

    validate_parser = commands.add_parser(
        "validate", help="Verify ledger signatures and hash chaining."
    )
    validate_parser.add_argument("--ledger", help="Ledger path override.")
    validate_parser.add_argument(
        "--public-key",
        "-k",
        help="Public key hex. If omitted, derived from FLOWSTATE_SIGNING_KEY.",
    )

    cleanup_parser = commands.add_parser(
        "cleanup", help="Delete old snapshots that are no longer referenced."
    )
    cleanup_parser.add_argument("--older-than-days", type=int)
    cleanup_parser.add_argument(
        "--keep",
        action="append",
        metavar="SNAPSHOT_ID",
        help="Snapshot id to keep regardless of age. Repeatable.",
    )
    cleanup_parser.add_argument("--ledger", help="Ledger path override.")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the flowstate command line."""
    parser = _build_parser()

    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:  # pragma: no cover - controlled via tests
        exit_code = int(exc.code) if isinstance(exc.code, int) else 1
        return 0 if exit_code == 0 else 1

    listener = None
    try:
        settings = get_settings()
        config = load_config(args.config, settings=settings)
        listener = configure_structured_logging(
            logging.getLogger("flowstate"),
            level=resolve_log_level(args.log_level or config.logging.level),
            structured=config.logging.structured,
        )
        return _COMMANDS[args.command](args, config, settings)
    except (StateHashError, SnapshotStoreError, ValueError, OSError) as exc:
        if not args.quiet:
            print(str(exc), file=sys.stderr)
        return 1
    finally:
        if listener is not None:
            shutdown_listeners([listener])


if __name__ == "__main__":
    raise SystemExit(main())
