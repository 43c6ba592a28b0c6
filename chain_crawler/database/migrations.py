import logging

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from chain_crawler.exceptions import DatabaseError

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("db").getChild("migrations")


def migrate_up(db_engine: Engine):
    """Create Sqlalchemy DB Tables.  Existing tables are left untouched"""
    # pylint: disable=import-outside-toplevel,unused-import
    import chain_crawler.database.models.ethereum

    from .models.base import Base

    # pylint: enable=import-outside-toplevel,unused-import

    try:
        Base.metadata.create_all(bind=db_engine)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to create crawler tables: {e}") from e

    logger.info(f"Created tables {sorted(Base.metadata.tables.keys())}")
