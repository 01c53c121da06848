"""Create or reset an admin account

    python create_admin.py --admin-id A001 --first-name Jane --password s3cret!
"""
import argparse
import sys

import database
from database import create_document, utcnow
from schemas import Admin
from security import get_password_hash


def upsert_admin(db, admin_id: str, first_name: str, password: str,
                 last_name: str = None, email: str = None) -> bool:
    """Returns True when a new account was created"""
    hashed = get_password_hash(password)
    existing = db["admin"].find_one({"admin_id": admin_id})
    if existing:
        db["admin"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"password_hash": hashed, "session_expiry": None, "updated_at": utcnow()}},
        )
        return False

    admin = Admin(admin_id=admin_id, first_name=first_name, last_name=last_name,
                  email=email, password_hash=hashed)
    create_document(db, "admin", admin)
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--admin-id", required=True)
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name")
    parser.add_argument("--email")
    parser.add_argument("--password", required=True)
    args = parser.parse_args(argv)

    db = database.connect()
    if db is None:
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1
    database.ensure_indexes(db)

    created = upsert_admin(db, args.admin_id, args.first_name, args.password,
                           last_name=args.last_name, email=args.email)
    print(f"{'Created' if created else 'Updated'} admin {args.admin_id}")
    database.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
