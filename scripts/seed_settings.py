#!/usr/bin/env python3
"""
Seed the settings table with default values and a first location.
Existing settings rows are left untouched.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bookhub import create_app
from bookhub.extensions import db
from bookhub.models import Location, Setting
from bookhub.settings import DEFINITIONS, save_settings


def seed_settings(location_name: str = "Main Studio"):
    app = create_app()

    with app.app_context():
        print("🔄 Seeding default settings...")
        existing = {(row.category, row.key) for row in Setting.query.all()}

        missing: dict[str, dict[str, object]] = {}
        for (category, key), definition in DEFINITIONS.items():
            if (category, key) in existing:
                continue
            missing.setdefault(category, {})[key] = definition.default

        if not missing:
            print("⏭️  All settings already present")
        for category, values in sorted(missing.items()):
            save_settings(category, values)
            print(f"✅ {category}: {', '.join(sorted(values))}")

        if Location.query.count() == 0:
            db.session.add(Location(name=location_name))
            db.session.commit()
            print(f"✅ Created location '{location_name}'")


if __name__ == "__main__":
    seed_settings()
