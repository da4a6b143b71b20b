"""
Issue a bearer token for calling the catalog's mutating endpoints.

Examples:
    python -m scripts.issue_token 1
    python -m scripts.issue_token 1 --minutes 30
"""

import argparse
from datetime import timedelta

from product_service.core.security import create_access_token


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a JWT for a user id")
    parser.add_argument("user_id", type=int, help="User id carried in the token")
    parser.add_argument("--minutes", type=int, default=None, help="Override the token lifetime")
    args = parser.parse_args()

    expires = timedelta(minutes=args.minutes) if args.minutes else None
    print(create_access_token(args.user_id, expires_delta=expires))


if __name__ == "__main__":
    main()
