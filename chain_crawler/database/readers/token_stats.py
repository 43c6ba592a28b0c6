import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy import text as encode_sql_text
from sqlalchemy.orm import Session

from chain_crawler.database.models import TokenTransfer
from chain_crawler.utils import utc_now

package_logger = logging.getLogger("chain_crawler")
logger = package_logger.getChild("db").getChild("token_stats")


@dataclass(frozen=True)
class TokenStats:
    """Transfer statistics for a single token over a time window"""

    token_address: str
    transfer_count: int
    unique_senders: int
    unique_receivers: int
    total_volume: Decimal


def _top_tokens_postgres(db_session: Session, cutoff: datetime.datetime, limit: int) -> list[TokenStats]:
    result = db_session.execute(
        encode_sql_text(
            """
                SELECT
                    token_address,
                    COUNT(*) AS transfer_count,
                    COUNT(DISTINCT from_address) AS unique_senders,
                    COUNT(DISTINCT to_address) AS unique_receivers,
                    SUM(CAST(value AS NUMERIC)) AS total_volume
                FROM token_transfers
                WHERE timestamp > :cutoff
                GROUP BY token_address
                ORDER BY total_volume DESC, token_address
                LIMIT :limit;
            """
        ),
        {"cutoff": cutoff, "limit": limit},
    )

    return [
        TokenStats(
            token_address=row.token_address,
            transfer_count=row.transfer_count,
            unique_senders=row.unique_senders,
            unique_receivers=row.unique_receivers,
            total_volume=Decimal(row.total_volume),
        )
        for row in result
    ]


def _top_tokens_generic(db_session: Session, cutoff: datetime.datetime, limit: int) -> list[TokenStats]:
    # Dialects without arbitrary precision NUMERIC (ie, SQLite) would sum uint256 values as floats, so rows in
    # the window are summed as python ints instead
    rows = db_session.execute(
        select(
            TokenTransfer.token_address,
            TokenTransfer.from_address,
            TokenTransfer.to_address,
            TokenTransfer.value,
        ).where(TokenTransfer.timestamp > cutoff)
    )

    counts: dict[str, int] = {}
    senders: dict[str, set[str]] = {}
    receivers: dict[str, set[str]] = {}
    volumes: dict[str, int] = {}

    for token_address, from_address, to_address, value in rows:
        counts[token_address] = counts.get(token_address, 0) + 1
        senders.setdefault(token_address, set()).add(from_address)
        receivers.setdefault(token_address, set()).add(to_address)
        volumes[token_address] = volumes.get(token_address, 0) + int(value)

    ranked = sorted(volumes.keys(), key=lambda token: (-volumes[token], token))

    return [
        TokenStats(
            token_address=token,
            transfer_count=counts[token],
            unique_senders=len(senders[token]),
            unique_receivers=len(receivers[token]),
            total_volume=Decimal(volumes[token]),
        )
        for token in ranked[:limit]
    ]


def get_top_tokens_by_volume(
    db_session: Session,
    limit: int = 10,
    days: int = 7,
    now: datetime.datetime | None = None,
) -> list[TokenStats]:
    """
    Returns the top tokens ranked by total transfer volume over the trailing window of days.  Volumes are summed
    with exact decimal arithmetic.

    .. note::
        Tokens with equal volume are returned in token address order.  This ordering is an implementation
        detail, and callers should not rely on it.

    :param db_session: sqlalchemy session object
    :param limit: Maximum number of tokens to return
    :param days: Length of the trailing window in days.  Transfers with timestamps older than the window are excluded
    :param now: End of the window as a naive UTC datetime.  Defaults to the current time
    :return: list of :class:`TokenStats` ordered by descending volume
    """
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")
    if days < 0:
        raise ValueError(f"days cannot be negative, got {days}")

    cutoff = (now or utc_now()) - datetime.timedelta(days=days)
    dialect = db_session.get_bind().dialect.name

    logger.info(f"Querying top {limit} tokens by volume for transfers after {cutoff.isoformat()}")

    if dialect == "postgresql":
        return _top_tokens_postgres(db_session, cutoff, limit)
    return _top_tokens_generic(db_session, cutoff, limit)
