"""In-memory snapshot of ledger records"""
import logging
from typing import List, Optional

from socialmine.errors import ErrorKind
from socialmine.guards import RefreshGate
from socialmine.models.record import MiningRecord, RecordSnapshot, utc_now
from socialmine.scoring import SnapshotScorer
from socialmine.services.ledger import LedgerReader

logger = logging.getLogger(__name__)

class RecordCache:
    """
    Holds the current RecordSnapshot and rebuilds it from the ledger.

    A snapshot is never edited; refresh builds a new one from a single fetch
    and swaps it in. Overlapping refresh requests are coalesced.
    """

    def __init__(self, reader: LedgerReader, scorer: Optional[SnapshotScorer] = None):
        self.reader = reader
        self.scorer = scorer or SnapshotScorer()
        self._snapshot = RecordSnapshot()
        self._gate: RefreshGate[RecordSnapshot] = RefreshGate(self._rebuild)

    @property
    def snapshot(self) -> RecordSnapshot:
        return self._snapshot

    @property
    def refreshing(self) -> bool:
        return self._gate.busy

    async def refresh(self) -> RecordSnapshot:
        """
        Fetch all records and replace the snapshot.

        Records whose detail cannot be read are logged and skipped.

        Raises:
            Exception: If the record id list itself cannot be fetched
        """
        return await self._gate.run()

    def build_snapshot(self, records: List[MiningRecord]) -> RecordSnapshot:
        """Build a snapshot whose aggregates come from exactly these records"""
        frozen = tuple(records)
        return RecordSnapshot(
            records=frozen,
            stats=self.scorer.calculate_stats(frozen),
            leaderboard=self.scorer.rank_contributors(frozen),
            refreshed_at=utc_now()
        )

    async def _rebuild(self) -> RecordSnapshot:
        record_ids = await self.reader.list_record_ids()
        previous = self._snapshot
        records: List[MiningRecord] = []
        skipped = 0

        for record_id in record_ids:
            try:
                record = await self.reader.get_record(record_id)
            except Exception as e:
                skipped += 1
                logger.error(f"Error loading record {record_id}: {e}")
                continue
            records.append(self._keep_verified(previous.get(record_id), record))

        if skipped:
            logger.warning(
                f"{ErrorKind.PARTIAL_FETCH_FAILURE.value}: skipped {skipped} of {len(record_ids)} records"
            )

        snapshot = self.build_snapshot(records)
        self._snapshot = snapshot
        logger.info(f"Loaded {len(snapshot)} records from ledger")
        return snapshot

    def _keep_verified(self, known: Optional[MiningRecord], fetched: MiningRecord) -> MiningRecord:
        # Verification is monotonic; a lagging node must not un-verify a record
        if known is not None and known.is_verified and not fetched.is_verified:
            logger.warning(f"Ledger reports record {fetched.id} as unverified; keeping verified copy")
            return known
        return fetched
