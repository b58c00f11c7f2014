"""Local development token script.

In production the identity provider issues session tokens. For local testing
this signs one with ROOMCHAT_JWT_SECRET so you can call the API and open the
WebSockets as any user. Optionally creates the user's profile row.

Usage:
    python scripts/mint_dev_token.py <user-id> [--name "Full Name"] [--hours 12]
"""

import argparse
from datetime import datetime, timedelta, timezone

import jwt
from sqlmodel import Session

from roomchat.core.config import settings
from roomchat.core.database import engine, init_db
from roomchat.services.profiles import upsert_profile

parser = argparse.ArgumentParser(description="Sign a development session token")
parser.add_argument("user_id")
parser.add_argument("--name", default=None, help="Also save this as the user's profile name")
parser.add_argument("--hours", type=int, default=12)
args = parser.parse_args()

if settings.jwt_secret.startswith("dev-only-secret"):
    print("Warning: ROOMCHAT_JWT_SECRET is still the default value.")

now = datetime.now(timezone.utc)
claims = {
    "sub": args.user_id,
    "aud": settings.jwt_audience,
    "role": "authenticated",
    "iat": now,
    "exp": now + timedelta(hours=args.hours),
}
token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)

if args.name:
    init_db()
    with Session(engine) as session:
        upsert_profile(session, args.user_id, full_name=args.name)
    print(f"Profile saved for {args.user_id}: {args.name}")

print(f"\nToken for {args.user_id} (valid {args.hours}h):\n")
print(token)
print("\nUse it as:")
print("  Authorization: Bearer <token>")
print(f"  ws://{settings.host}:{settings.port}/api/inbox/ws?token=<token>")
