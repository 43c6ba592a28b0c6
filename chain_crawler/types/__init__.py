from .backfill import (
    BatchResult,
    BlockResult,
    CrawlSummary,
    EntityType,
    ProcessingResult,
    ResultStatus,
)
from .decoding import DecodedEvent, EventValue, EventValueKind
