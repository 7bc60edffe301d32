#!/usr/bin/env python3
"""
Import progress rows exported by the legacy success-rate version of the app

Legacy rows carry correct/wrong counts but their mastery level was derived
from the cumulative success rate, not from the incremental box transitions.
The level is recomputed from the counts with the legacy formula once, here;
afterwards every review moves it through MasteryEngine like any other row.
"""

import argparse
import json
import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from progress_engine.core.database.database_manager import DatabaseManager  # noqa: E402
from progress_engine.mastery import legacy_mastery_level  # noqa: E402


def migrate_legacy_rows(
    db_manager: DatabaseManager, rows: list[dict[str, Any]], dry_run: bool = False
) -> int:
    """Upsert legacy rows with their recomputed level, returns the number imported"""
    imported = 0

    for row in rows:
        try:
            correct_count = int(row.get("correct_count") or 0)
            wrong_count = int(row.get("wrong_count") or 0)
            fields = {
                "correct_count": correct_count,
                "wrong_count": wrong_count,
                "mastery_level": legacy_mastery_level(correct_count, wrong_count),
                "last_practiced": row.get("last_practiced") or datetime.now(UTC).isoformat(),
            }
            user_id = str(row["user_id"])
            word_id = int(row["word_id"])
        except (KeyError, TypeError, ValueError) as e:
            print(f"  ⚠️  Skipping invalid row {row}: {e}")
            continue

        print(
            f"  🔁 user={user_id} word={word_id}: "
            f"{row.get('mastery_level')} -> {fields['mastery_level']}"
        )
        if not dry_run:
            db_manager.upsert_progress(user_id, word_id, fields)
        imported += 1

    return imported


def main():
    """Main migration function"""
    parser = argparse.ArgumentParser(description="Import legacy progress rows")
    parser.add_argument("json_path", help="JSON export with a user_progress list")
    parser.add_argument("database_path", help="SQLite database file")
    parser.add_argument("--dry-run", action="store_true", help="Report changes only")
    args = parser.parse_args()

    if not Path(args.json_path).exists():
        print(f"❌ Export file not found: {args.json_path}")
        sys.exit(1)

    with open(args.json_path, encoding="utf-8") as f:
        data = json.load(f)

    rows = data.get("user_progress", []) if isinstance(data, dict) else data
    print(f"📖 Loaded {len(rows)} legacy progress rows from {args.json_path}")

    db_manager = DatabaseManager(args.database_path)
    db_manager.init_database()

    imported = migrate_legacy_rows(db_manager, rows, args.dry_run)

    suffix = " (dry run)" if args.dry_run else ""
    print(f"🎉 {imported} rows imported{suffix}")


if __name__ == "__main__":
    main()
