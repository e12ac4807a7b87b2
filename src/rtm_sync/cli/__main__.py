"""CLI entry point for rtm_sync.cli module.

Enables execution via: python -m rtm_sync.cli
"""

from rtm_sync.cli.main import main

if __name__ == "__main__":
    raise SystemExit(main())
