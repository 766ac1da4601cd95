#!/usr/bin/env python3
"""
Mint a local access token for manual API testing.

The token is signed with SUPABASE_JWT_SECRET, so the API accepts it exactly
like one issued by the identity provider. Never point this at production.

    python demo/mint_token.py --user-id 0f1c... --email dj@example.com
    python demo/mint_token.py --user-id ops-1 --admin --minutes 15
"""

import argparse
from datetime import timedelta

from djei.security import create_access_token


def main():
    parser = argparse.ArgumentParser(description="Mint a local DJEI access token")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--email", default="")
    parser.add_argument("--name", default=None, help="user_metadata.full_name")
    parser.add_argument("--admin", action="store_true", help="set app_metadata.role=admin")
    parser.add_argument("--minutes", type=int, default=None)
    args = parser.parse_args()

    token = create_access_token(
        args.user_id,
        email=args.email,
        user_metadata={"full_name": args.name} if args.name else None,
        app_metadata={"role": "admin"} if args.admin else None,
        expires_delta=timedelta(minutes=args.minutes) if args.minutes else None,
    )
    print(token)


if __name__ == "__main__":
    main()
