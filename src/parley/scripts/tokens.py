# src/parley/scripts/tokens.py
"""Issue a development access token for a user id.

Useful for poking the REST routes and the ``/ws`` endpoint by hand:

    parley-token alice
    websocat "ws://localhost:8000/ws?token=$(parley-token alice)"
"""
from __future__ import annotations

import argparse

from parley.core.security import create_access_token


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Issue an access token for a user id")
    parser.add_argument("user_id", help="Subject of the token")
    args = parser.parse_args(argv)

    if not args.user_id.strip():
        parser.error("user_id must not be blank")
    print(create_access_token(args.user_id.strip()))


if __name__ == "__main__":
    main()
