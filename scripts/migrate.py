"""Run the scheduling database migrations.

Usage:
    python scripts/migrate.py                 upgrade to the latest revision
    python scripts/migrate.py down <rev>      downgrade to <rev>
    python scripts/migrate.py current         show the applied revision
"""

import sys

from alembic import command
from alembic.config import Config

ALEMBIC_INI = "alembic.ini"


def upgrade(revision: str = "head") -> None:
    """Apply migrations up to ``revision``."""
    print(f"Upgrading scheduling schema to {revision}...")
    command.upgrade(Config(ALEMBIC_INI), revision)
    print("Schema is up to date.")


def downgrade(revision: str) -> None:
    """Revert migrations down to ``revision``."""
    print(f"Downgrading scheduling schema to {revision}...")
    command.downgrade(Config(ALEMBIC_INI), revision)
    print("Downgrade complete.")


def main(argv: list[str]) -> int:
    try:
        if not argv:
            upgrade()
        elif argv[0] == "down" and len(argv) == 2:
            downgrade(argv[1])
        elif argv[0] == "current":
            command.current(Config(ALEMBIC_INI), verbose=True)
        else:
            print(__doc__)
            return 2
    except Exception as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
