"""CLI entry point for partcopy-parts: inspect sessions in the part store."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from partcopy.config import load_config
from partcopy.partstore import SessionState
from partcopy.partstore.sqlite import SQLitePartStore
from partcopy.session import resolve_session


def _resolve_db_path(args: argparse.Namespace) -> str:
    if args.db:
        return args.db
    return load_config(args.config).part_store.sqlite.path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="partcopy-parts",
        description="Inspect copy sessions recorded in the SQLite part store",
    )
    parser.add_argument(
        "--config", type=Path, default=Path("partcopy.yaml"),
        help="Config file path (default: partcopy.yaml)",
    )
    parser.add_argument(
        "--db", type=str, default=None,
        help="SQLite database path (overrides config)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sessions_parser = subparsers.add_parser("sessions", help="List sessions and their progress")
    sessions_parser.add_argument(
        "--state", choices=[s.value for s in SessionState], default=None,
        help="Only list sessions in this state",
    )

    parts_parser = subparsers.add_parser("parts", help="Show every part of one session")
    parts_parser.add_argument("--bucket", required=True)
    parts_parser.add_argument("--key", required=True)
    parts_parser.add_argument("--upload-id", required=True)

    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> dict:
    store = SQLitePartStore(_resolve_db_path(args))
    await store.init_db()
    try:
        if args.command == "sessions":
            state = SessionState(args.state) if args.state else None
            sessions = await store.list_sessions(state)
            return {"sessions": [s.to_dict() for s in sessions]}

        session = resolve_session(args.bucket, args.key, args.upload_id)
        state = await store.session_state(session)
        counts = await store.counts(session)
        parts = await store.list_all(session)
        return {
            "sessionId": session.id,
            "state": state.value if state is not None else None,
            "total": counts.total,
            "completed": counts.completed,
            "parts": [p.to_dict() for p in parts],
        }
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        result = asyncio.run(_run(args))
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    json.dump(result, sys.stdout, indent=2)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
