#!/usr/bin/env python3
"""
Run the tenant administration API.

Creates any missing tables first, then serves the app with uvicorn.
"""

import os
import sys


def main() -> None:
    # Make src importable
    repo_root = os.path.dirname(os.path.abspath(__file__))
    sys.path.insert(0, os.path.join(repo_root, "src"))

    import uvicorn

    from database.connection import init_schema

    init_schema()

    uvicorn.run(
        "admin_panel.api.app:create_app",
        factory=True,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes"),
    )


if __name__ == "__main__":
    main()
