import argparse
import os
import sys

from dotenv import load_dotenv

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

from diro.database import get_db  # noqa: E402
from diro.services.settings_store import settings_store  # noqa: E402
from diro.utils.security import hash_password  # noqa: E402


def seed_admin(email: str, password: str, name: str) -> None:
    db = get_db()
    existing = db.table("users").select("id").eq("email", email).eq("role", "admin").limit(1).execute()
    if existing.data:
        print(f"Admin {email} already exists ({existing.data[0]['id']})")
        return

    created = db.table("users").insert(
        {
            "name": name,
            "email": email,
            "role": "admin",
            "auth_provider": "local",
            "password_hash": hash_password(password),
            "can_create_campaign": True,
            "is_active": True,
        }
    ).execute()
    print(f"Created admin {email} ({created.data[0]['id']})")


def main():
    parser = argparse.ArgumentParser(description="Seed the admin account and platform settings.")
    parser.add_argument("--email", default=os.getenv("ADMIN_EMAIL", "admin@diro.app"))
    parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))
    parser.add_argument("--name", default="Platform Admin")
    args = parser.parse_args()

    if not args.password:
        parser.error("an admin password is required (--password or ADMIN_PASSWORD)")

    print("Platform settings:", settings_store.load().public_dict())
    seed_admin(args.email.strip().lower(), args.password, args.name)


if __name__ == "__main__":
    main()
