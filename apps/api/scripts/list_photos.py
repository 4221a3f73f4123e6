"""List a user's photos by email.

Usage: python scripts/list_photos.py --email someone@example.com
"""

import argparse
import asyncio
import sys
import os

# Add parent dir to path to find config/database
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import async_session_maker, engine
from services.photos import PhotoStore
from services.users import get_user_by_email


async def list_photos(email: str) -> int:
    async with async_session_maker() as db:
        user = await get_user_by_email(db, email)
        if not user:
            print(f"❌ User with email {email} not found")
            return 1

        photos = await PhotoStore(db).list_for_owner(user.id)
        print(f"\nUser: {email} (ID: {user.id})\n")
        print(f"Found {len(photos)} photo(s):\n")
        for index, photo in enumerate(photos, start=1):
            print(f"Photo {index}:")
            print(f"  ID: {photo.id}")
            print(f"  Name: {photo.name}")
            print(f"  Restored: {'Yes' if photo.restored else 'No'}")
            print(f"  Exported: {'Yes' if photo.exported else 'No'}")
            print(f"  Created: {photo.created_at}")
            print("")
    await engine.dispose()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", required=True)
    args = parser.parse_args()
    return asyncio.run(list_photos(args.email))


if __name__ == "__main__":
    sys.exit(main())
