import logging

from biosync.db.base import Base
from biosync.db.session import engine

logger = logging.getLogger(__name__)


def init_db() -> None:
    # Single-device store: no migrations, the key-value table is created on demand.
    Base.metadata.create_all(bind=engine)
    logger.info("Key-value store ready at %s", engine.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    init_db()
