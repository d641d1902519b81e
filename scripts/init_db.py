#!/usr/bin/env python3
"""Create the BookHub tables, optionally dropping existing ones first."""
import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bookhub import create_app
from bookhub.extensions import db


def init_database(drop: bool = False):
    app = create_app()
    with app.app_context():
        if drop:
            db.drop_all()
            print("🗑️  Dropped existing tables")
        db.create_all()
        tables = ", ".join(sorted(db.metadata.tables))
        print(f"✅ Database tables initialized: {tables}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drop", action="store_true", help="drop all tables before creating them")
    args = parser.parse_args()
    init_database(drop=args.drop)


if __name__ == "__main__":
    main()
