"""
Backup Module Entry Point

Allows execution via: python -m snapship.apps.backup

Delegates to the CLI for all execution modes (one-shot and scheduled).
"""

from snapship.apps.backup.cli import main

if __name__ == "__main__":
    main()
