"""Reset and reseed the demo directory in MongoDB."""
from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.demo_adapter import DemoAdapter  # noqa: E402
from groupsync.config import load_settings  # noqa: E402


def main() -> None:
    settings = load_settings()
    if not settings.mongo_uri:
        raise SystemExit("DEMO_MONGO_URI is not defined; update .env before running.")
    adapter = DemoAdapter(settings.mongo_uri, db_name=settings.mongo_db, seed=False)
    adapter.seed_if_empty(force=True)
    adapter.close()
    print("Demo data reset complete.")


if __name__ == "__main__":
    main()
