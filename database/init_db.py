import os
import sys

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from marketplace import create_app
from marketplace.db import get_db, init_db
from marketplace.seed import seed_demo_data


app = create_app()


if __name__ == "__main__":
    with app.app_context():
        init_db()
        if os.environ.get("SEED_DEMO_DATA", "1").strip().lower() in {"1", "true", "yes", "on"}:
            result = seed_demo_data(get_db())
            print(f"Seeded {result['categories']} categories and {result['accounts']} accounts.")
    print("Database initialized.")
