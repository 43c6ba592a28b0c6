import logging
import time
from typing import Callable, Iterator

from chain_crawler.types.backfill import BatchResult, CrawlSummary

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("backfill").getChild("ranges")


class RangeScheduler:
    """
    Partitions an inclusive block range into fixed size batches, and processes them in ascending order.

    Batches are independent.  A failed batch is logged and recorded in the :class:`CrawlSummary`, and the scheduler
    continues with the next batch.  Failed batches are not retried.

    >>> list(RangeScheduler(100, 255, 50).batches())
    [(100, 149), (150, 199), (200, 249), (250, 255)]
    """

    start_block: int
    end_block: int
    batch_size: int
    batch_delay: float

    def __init__(
        self,
        start_block: int,
        end_block: int,
        batch_size: int,
        batch_delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if start_block < 0:
            raise ValueError(f"start_block cannot be negative, got {start_block}")
        if start_block > end_block:
            raise ValueError(f"start_block ({start_block}) must be less than or equal to end_block ({end_block})")
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if batch_delay < 0:
            raise ValueError(f"batch_delay cannot be negative, got {batch_delay}")

        self.start_block = start_block
        self.end_block = end_block
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    def batches(self) -> Iterator[tuple[int, int]]:
        """Yields inclusive (from_block, to_block) pairs that cover the range exactly once"""
        for from_block in range(self.start_block, self.end_block + 1, self.batch_size):
            yield from_block, min(from_block + self.batch_size - 1, self.end_block)

    @property
    def batch_count(self) -> int:
        return -(-(self.end_block - self.start_block + 1) // self.batch_size)

    def run(
        self,
        process_batch: Callable[[int, int], BatchResult],
        on_batch_complete: Callable[[BatchResult], None] | None = None,
    ) -> CrawlSummary:
        """
        Runs process_batch for every batch in order, pausing batch_delay seconds between batches.  If process_batch
        raises, the batch is recorded as failed with the exception as the reason.

        :param process_batch: Callable processing an inclusive block range
        :param on_batch_complete: Optional callback invoked after each batch, used for progress reporting
        :return: :class:`CrawlSummary`
        """
        summary = CrawlSummary()
        batch_count = self.batch_count

        for index, (from_block, to_block) in enumerate(self.batches()):
            if index > 0 and self.batch_delay > 0:
                self._sleep(self.batch_delay)

            logger.info(f"Processing batch {index + 1}/{batch_count}: blocks {from_block} - {to_block}")
            try:
                batch_result = process_batch(from_block, to_block)
            except Exception as e:  # pylint: disable=broad-exception-caught
                batch_result = BatchResult(from_block, to_block, reason=f"{e.__class__.__name__}: {e}")

            if not batch_result.succeeded:
                logger.error(f"Batch {from_block} - {to_block} failed: {batch_result.reason}")

            summary.record(batch_result)
            if on_batch_complete:
                on_batch_complete(batch_result)

        logger.info(
            f"Finished {batch_count} batches from {self.start_block} to {self.end_block}.  "
            f"{len(summary.failed)} batches failed"
        )
        return summary
