"""One-shot schema creation for the configured store."""

from stellar_gateway.core.settings import settings
from stellar_gateway.db.session import Store


def init_db(database_url: str | None = None) -> None:
    """Initialize the database by creating all tables."""
    with Store(database_url or settings.database_url) as store:
        store.create_tables()


if __name__ == "__main__":
    init_db()
    print("Database initialized.")
