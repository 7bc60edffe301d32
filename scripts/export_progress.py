#!/usr/bin/env python3
"""
Export a user's progress, sessions and review history to JSON
"""

import json
import os
import sys
from datetime import UTC, datetime
from pathlib import Path

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from progress_engine.core.database.database_manager import DatabaseManager  # noqa: E402


def export_progress_data(db_path: str, user_id: str, output_path: str) -> bool:
    """Export all progress data of a user to JSON"""
    try:
        db_manager = DatabaseManager(db_path)

        print(f"📖 Exporting progress of {user_id} from {db_path}")

        progress = db_manager.query_progress(user_id)
        print(f"  📊 Found {len(progress)} progress records")

        sessions = db_manager.get_user_sessions(user_id, limit=10000)
        print(f"  🗓️  Found {len(sessions)} sessions")

        review_history = db_manager.get_review_history(user_id, limit=100000)
        print(f"  📈 Found {len(review_history)} review history records")

        export_data = {
            "export_info": {
                "exported_at": datetime.now(UTC).isoformat(),
                "database_path": db_path,
                "user_id": user_id,
            },
            "user_progress": progress,
            "learning_sessions": sessions,
            "review_history": review_history,
        }

        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(export_data, f, indent=2, ensure_ascii=False, default=str)

        print(f"✅ Successfully exported data to {output_path}")
        return True

    except Exception as e:
        print(f"❌ Export failed: {e}")
        return False


def main():
    """Main export function"""
    if len(sys.argv) != 4:
        print("Usage: python export_progress.py <database_path> <user_id> <output_json_path>")
        print("Example: python export_progress.py data/progress.db user-1 data/user-1.json")
        sys.exit(1)

    db_path, user_id, output_path = sys.argv[1:4]

    if not Path(db_path).exists():
        print(f"❌ Database file not found: {db_path}")
        sys.exit(1)

    if export_progress_data(db_path, user_id, output_path):
        print("🎉 Export completed successfully!")
        sys.exit(0)
    else:
        print("💥 Export failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
