"""Schema history of the key-value store.

Each step is applied at most once; the highest applied version is recorded
in ``schema_version`` so reopening a file only runs the newer steps.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Migration:
    """One schema step."""

    version: int
    description: str
    script: str


MIGRATIONS = (
    Migration(
        1,
        'settings table',
        """
        CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY);
        CREATE TABLE IF NOT EXISTS settings (key TEXT PRIMARY KEY, value TEXT NOT NULL);
        INSERT INTO schema_version (version) VALUES (1);
        """,
    ),
    Migration(
        2,
        'track when each key was last written',
        """
        ALTER TABLE settings ADD COLUMN updated_at TEXT;
        UPDATE schema_version SET version = 2;
        """,
    ),
)

SCHEMA_VERSION = MIGRATIONS[-1].version


def pending_migrations(current_version: int) -> list[Migration]:
    """Steps newer than ``current_version``, oldest first."""
    return [m for m in MIGRATIONS if m.version > current_version]
