import os
import sys

from dotenv import load_dotenv

# Add backend directory to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Load env
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

from postgrest.exceptions import APIError  # noqa: E402

from diro.database import get_db  # noqa: E402


EXPECTED_COLUMNS = {
    "users": {"id", "email", "role", "auth_provider", "password_hash", "external_id", "withdrawable_balance"},
    "campaigns": {"id", "brand_id", "goal_views", "cpm", "deposit", "min_views_for_payout", "status"},
    "clips": {"id", "campaign_id", "creator_id", "clip_link", "views", "earnings", "settled_earnings", "status"},
    "payments": {"id", "type", "campaign_id", "creator_id", "amount", "status", "payment_method"},
    "admin_settings": {"singleton_key", "min_cpm", "min_views_for_payout", "platform_commission_percentage"},
}


def main():
    db = get_db()
    failures = 0
    for table, columns in EXPECTED_COLUMNS.items():
        try:
            db.table(table).select(",".join(sorted(columns))).limit(1).execute()
        except APIError as e:
            failures += 1
            print(f"[FAIL] {table}: {e.message}")
            continue
        print(f"[ OK ] {table}")

    if failures:
        print(f"{failures} table(s) do not match schema.sql")
        sys.exit(1)


if __name__ == "__main__":
    main()
