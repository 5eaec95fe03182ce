"""Aggregate statistics and contributor ranking for record snapshots"""
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from socialmine.models.record import LeaderboardEntry, MiningRecord, RecordStats

class SnapshotScorer:
    """Derives stats and the leaderboard from one record set"""

    def __init__(self, leaderboard_size: int = 5):
        self.leaderboard_size = leaderboard_size

    def disclosed_value(self, record: MiningRecord) -> int:
        """Value that counts towards scores; sealed records count as zero"""
        if not record.is_verified or record.decrypted_value is None:
            return 0
        return record.decrypted_value

    def calculate_stats(self, records: Sequence[MiningRecord]) -> RecordStats:
        """Calculate participant count, total value and average score"""
        participants = {record.creator for record in records}
        verified = [record for record in records if record.is_verified]
        total_value = sum(self.disclosed_value(record) for record in verified)
        average_score = round(total_value / len(verified)) if verified else 0

        return RecordStats(
            participant_count=len(participants),
            total_value=total_value,
            average_score=average_score
        )

    def rank_contributors(self, records: Iterable[MiningRecord]) -> Tuple[LeaderboardEntry, ...]:
        """Rank creators by total disclosed value, ties broken by record count then address"""
        totals: Dict[str, int] = defaultdict(int)
        counts: Dict[str, int] = defaultdict(int)
        for record in records:
            totals[record.creator] += self.disclosed_value(record)
            counts[record.creator] += 1

        ordered: List[str] = sorted(
            totals,
            key=lambda creator: (-totals[creator], -counts[creator], creator.lower())
        )
        return tuple(
            LeaderboardEntry(
                rank=index + 1,
                creator=creator,
                total_value=totals[creator],
                record_count=counts[creator]
            )
            for index, creator in enumerate(ordered[:self.leaderboard_size])
        )
