import sys

from db import Database


def migrate(db_path='protocols.db') -> int:
    """Bring ``db_path`` to the latest schema version and return that version."""
    return Database(db_path).schema_version()

if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else 'protocols.db'
    print(f"{path}: schema version {migrate(path)}")
