from dataclasses import dataclass, field
from enum import Enum

# Disabling stupid naming check that wants enums to use UPPER_CASE
# pylint: disable=invalid-name


class EntityType(Enum):
    """Kinds of rows produced by the crawler"""

    blocks = "blocks"
    transactions = "transactions"
    transfers = "transfers"
    events = "events"

    def pretty(self):
        """Returns a pretty version of the entity type"""
        match self:
            case EntityType.transfers:
                return "Token Transfers"
            case EntityType.events:
                return "Contract Events"
            case _:
                return self.value.capitalize()


class ResultStatus(Enum):
    """
    Outcome of processing a single entity.

    * success -- entity was processed and written
    * skipped -- entity was not written, processing continues (duplicate key, decode error, receipt failure)
    * fatal -- the enclosing block cannot be completed, and the batch containing it is abandoned
    """

    success = "success"
    skipped = "skipped"
    fatal = "fatal"


@dataclass(frozen=True)
class ProcessingResult:
    """Result of processing a single block, transaction, transfer, or event"""

    status: ResultStatus
    entity: EntityType
    key: str
    reason: str | None = None

    @classmethod
    def success(cls, entity: EntityType, key: str) -> "ProcessingResult":
        return cls(ResultStatus.success, entity, key)

    @classmethod
    def skipped(cls, entity: EntityType, key: str, reason: str) -> "ProcessingResult":
        return cls(ResultStatus.skipped, entity, key, reason)

    @classmethod
    def fatal(cls, entity: EntityType, key: str, reason: str) -> "ProcessingResult":
        return cls(ResultStatus.fatal, entity, key, reason)

    @property
    def is_fatal(self) -> bool:
        return self.status == ResultStatus.fatal


@dataclass
class BlockResult:
    """Collects the entity results produced while processing a single block"""

    block_number: int
    results: list[ProcessingResult] = field(default_factory=list)

    def add(self, result: ProcessingResult | list[ProcessingResult]):
        if isinstance(result, list):
            self.results.extend(result)
        else:
            self.results.append(result)

    @property
    def fatal_result(self) -> ProcessingResult | None:
        """First fatal result for the block, or None if the block completed"""
        return next((r for r in self.results if r.is_fatal), None)

    def count(self, entity: EntityType, status: ResultStatus = ResultStatus.success) -> int:
        return sum(1 for r in self.results if r.entity == entity and r.status == status)


@dataclass
class BatchResult:
    """
    Result of processing an inclusive block range.  If the batch failed, failed_block holds the block that
    aborted it, and reason describes the failure.
    """

    from_block: int
    to_block: int
    block_results: list[BlockResult] = field(default_factory=list)
    failed_block: int | None = None
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.reason is None


@dataclass
class CrawlSummary:
    """Summary of a full crawl.  Failed batches can be re-submitted, since all writes are idempotent"""

    completed: list[BatchResult] = field(default_factory=list)
    failed: list[BatchResult] = field(default_factory=list)

    def record(self, batch: BatchResult):
        if batch.succeeded:
            self.completed.append(batch)
        else:
            self.failed.append(batch)

    @property
    def failed_ranges(self) -> list[tuple[int, int]]:
        return [(b.from_block, b.to_block) for b in self.failed]

    def total(self, entity: EntityType) -> int:
        """Number of rows of a given entity type newly written during the crawl"""
        return sum(
            block.count(entity) for batch in self.completed + self.failed for block in batch.block_results
        )
