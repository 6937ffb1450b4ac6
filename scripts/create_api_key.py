"""Issue, list or revoke cratehub API keys against the configured database.

Usage:
    uv run python scripts/create_api_key.py alice --name laptop   # issue a key
    uv run python scripts/create_api_key.py alice --list           # list key ids
    uv run python scripts/create_api_key.py alice --revoke KEY_ID  # revoke a key

Reads CRATEHUB_* settings from the environment or ``.env``.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from cratehub import CrateHub, Settings


async def run(args: argparse.Namespace) -> int:
    async with CrateHub.from_settings(Settings()) as hub:
        if args.revoke:
            if not await hub.delete_api_key(args.user_id, args.revoke):
                print(f"error: no key {args.revoke} for {args.user_id}", file=sys.stderr)
                return 1
            print(f"revoked {args.revoke}")
            return 0

        if args.list:
            for key in await hub.list_api_keys(args.user_id):
                used = key.last_used_at.isoformat() if key.last_used_at else "never"
                print(f"{key.id}  {key.name or '-'}  last used: {used}")
            return 0

        raw_key, record = await hub.create_api_key(args.user_id, args.name)
        print(f"key id:  {record.id}")
        print(f"api key: {raw_key}")
        print("Store the key now; it cannot be shown again.")
        return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage cratehub API keys")
    parser.add_argument("user_id", help="Owner of the key")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--name", help="Label for a new key")
    group.add_argument("--list", action="store_true", help="List the user's keys")
    group.add_argument("--revoke", metavar="KEY_ID", help="Revoke a key by id")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
