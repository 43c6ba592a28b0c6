import logging
import time

from sqlalchemy import Connection, Engine, Insert, TableClause, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from chain_crawler.database.models import Block, ContractEvent, TokenTransfer, Transaction
from chain_crawler.types import EntityType, ProcessingResult, ResultStatus

from .utils import model_to_dict

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("db").getChild("persister")


class Persister:
    """
    Writes crawler models to the database with insert-if-absent semantics.  Every row is written and committed
    individually:

        * If the key already exists, the write is a no-op and the first row is kept
        * If the write fails, the row is rolled back and reported as skipped, and later writes proceed

    Rows are never updated, so re-crawling an overlapping block range is always safe.
    """

    db_engine: Engine | Connection
    db_session: Session
    db_dialect: str

    def __init__(self, db_engine: Engine | Connection):
        self.db_engine = db_engine
        self.create_session()

        self.rows_written = {entity: 0 for entity in EntityType}
        self.duplicate_rows = 0
        self.failed_rows = 0
        self.start_time = time.time()

        logger.info(f"Initialized Persister for {self.db_dialect} database")

    def create_session(self):
        """Creates a new db_session"""
        self.db_session = sessionmaker(self.db_engine)()
        self.db_dialect = self.db_engine.dialect.name

    def _insert_statement(self, insert_table: TableClause, values: dict) -> Insert | None:
        """
        Returns an INSERT ... ON CONFLICT DO NOTHING statement for dialects that support it, or None if the dialect
        requires the generic fallback.
        """
        match self.db_dialect:
            case "postgresql":
                return postgresql.insert(insert_table).values(values).on_conflict_do_nothing()
            case "sqlite":
                return sqlite.insert(insert_table).values(values).on_conflict_do_nothing()
            case _:
                return None

    def _fallback_insert(self, insert_table: TableClause, values: dict) -> bool:
        try:
            self.db_session.execute(insert(insert_table).values(values))
        except IntegrityError:
            # Without ON CONFLICT support, a unique violation is treated as an existing row
            self.db_session.rollback()
            return False
        return True

    def save_model(self, model: DeclarativeBase, entity: EntityType, key: str) -> ProcessingResult:
        """
        Inserts a single model if its key is absent.

        :param model: ORM model instance to insert
        :param entity: entity type of the model, used for result reporting
        :param key: human readable key of the row, used for logging
        :return: success if the row was inserted, skipped if the row already existed or the write failed
        """
        insert_table: TableClause = model.__table__  # type: ignore[attr-defined]
        values = model_to_dict(model)

        try:
            statement = self._insert_statement(insert_table, values)
            if statement is not None:
                inserted = self.db_session.execute(statement).rowcount > 0  # type: ignore[attr-defined]
            else:
                inserted = self._fallback_insert(insert_table, values)
            self.db_session.commit()

        except SQLAlchemyError as exc:
            logger.error(f"Error writing {entity.value} row {key} to DB: {exc}")
            self.db_session.rollback()
            self.failed_rows += 1
            return ProcessingResult.skipped(entity, key, f"write failed: {exc.__class__.__name__}")

        if not inserted:
            logger.debug(f"{entity.pretty()} row {key} already exists... Skipping")
            self.duplicate_rows += 1
            return ProcessingResult.skipped(entity, key, "duplicate")

        self.rows_written[entity] += 1
        return ProcessingResult.success(entity, key)

    def save_block(self, block: Block) -> ProcessingResult:
        """
        Saves a block row.  Failing to write a block is fatal for the block, since its transactions, transfers, and
        events reference it.  An existing block row is not an error.
        """
        result = self.save_model(block, EntityType.blocks, str(block.number))
        if result.status == ResultStatus.skipped and result.reason != "duplicate":
            return ProcessingResult.fatal(EntityType.blocks, result.key, result.reason or "write failed")
        return result

    def save_transaction(self, transaction: Transaction) -> ProcessingResult:
        return self.save_model(transaction, EntityType.transactions, transaction.hash)

    def save_transfer(self, transfer: TokenTransfer) -> ProcessingResult:
        return self.save_model(transfer, EntityType.transfers, f"{transfer.tx_hash}:{transfer.log_index}")

    def save_event(self, event: ContractEvent) -> ProcessingResult:
        return self.save_model(event, EntityType.events, f"{event.tx_hash}:{event.log_index}")

    def finish(self):
        """
        Closes the database session and logs a summary of the rows written, and the time since creation.
        """
        self.db_session.close()

        minutes, seconds = divmod(time.time() - self.start_time, 60)
        written = ", ".join(f"{count} {entity.value}" for entity, count in self.rows_written.items())
        logger.info(
            f"Wrote {written} to DB in {int(minutes)} minutes {seconds:.1f} seconds.  "
            f"Skipped {self.duplicate_rows} existing rows and {self.failed_rows} failed rows"
        )
