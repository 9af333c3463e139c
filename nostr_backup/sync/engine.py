"""Works out which records the target relay is missing."""

import logging
from collections import Counter
from dataclasses import dataclass, field

from ..errors import ConnectivityError
from ..models import Filter, Record
from ..relays.pool import RelayPool

logger = logging.getLogger(__name__)


def build_filter(
    pubkey: str,
    kinds: list[int],
    since: int | None = None,
    until: int | None = None,
) -> Filter:
    """Build the query filter for one author."""
    return Filter(authors=(pubkey,), kinds=tuple(kinds), since=since, until=until)


def missing_records(candidates: list[Record], existing_ids: set[str]) -> list[Record]:
    """Records absent from ``existing_ids``, oldest first.

    Candidates are deduplicated by id, first occurrence kept. The sort is
    stable, so records with equal ``created_at`` keep their fetch order.
    """
    seen: set[str] = set(existing_ids)
    fresh: list[Record] = []
    for record in candidates:
        if record.id in seen:
            continue
        seen.add(record.id)
        fresh.append(record)
    return sorted(fresh, key=lambda r: r.created_at)


@dataclass
class SyncPlan:
    """What a backup run would publish."""

    filter: Filter
    existing_ids: set[str] = field(default_factory=set)
    candidates: list[Record] = field(default_factory=list)
    new_records: list[Record] = field(default_factory=list)
    target_reachable: bool = True

    @property
    def kinds_breakdown(self) -> dict[int, int]:
        """Candidate count per event kind."""
        return dict(sorted(Counter(r.kind for r in self.candidates).items()))


class SyncEngine:
    """Compares source relays against the target relay."""

    def __init__(self, pool: RelayPool, target: str, sources: list[str]):
        """Initialize the engine.

        Args:
            pool: Relay pool used for every query.
            target: Relay that should end up holding every record.
            sources: Relays to collect records from. The target is always
                queried as a source as well.
        """
        self.pool = pool
        self.target = target
        self.sources = list(dict.fromkeys([*sources, target]))

    async def existing_ids(self, flt: Filter) -> tuple[set[str], bool]:
        """Ids the target already holds.

        If the target cannot be reached the set is empty and every
        candidate will be published, duplicates included.

        Returns:
            Tuple of (ids, target_reachable).
        """
        logger.info(f"Fetching existing events from target relay {self.target}")
        try:
            result = await self.pool.query([self.target], flt)
        except ConnectivityError as e:
            error = str(e)
        else:
            if result.succeeded(self.target):
                ids = {record.id for record in result.records}
                logger.info(f"Found {len(ids)} existing events on target relay")
                return ids, True
            error = result.failures.get(self.target, "relay skipped")

        logger.warning(
            f"Could not connect to target relay {self.target}: {error}. "
            "Continuing without duplicate check; events already on the target "
            "may be published again."
        )
        return set(), False

    async def plan(self, flt: Filter) -> SyncPlan:
        """Fetch candidates and compute the records to publish, oldest first."""
        existing, reachable = await self.existing_ids(flt)

        logger.info(f"Fetching events from {len(self.sources)} source relay(s)")
        logger.debug(f"Filter: {flt.to_dict()}")
        result = await self.pool.query(self.sources, flt)
        for url, error in result.failures.items():
            logger.warning(f"Source relay {url} failed: {error}")

        plan = SyncPlan(
            filter=flt,
            existing_ids=existing,
            candidates=result.records,
            new_records=missing_records(result.records, existing),
            target_reachable=reachable,
        )
        logger.info(
            f"Retrieved {len(plan.candidates)} events, "
            f"{len(plan.new_records)} new (by kind: {plan.kinds_breakdown})"
        )
        return plan
