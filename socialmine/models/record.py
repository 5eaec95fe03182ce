"""Domain models for encrypted mining records"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Tuple

@dataclass(frozen=True)
class MiningRecord:
    """One encrypted contribution record as stored on the ledger"""
    id: str
    name: str
    description: str
    creator: str
    timestamp: int
    encrypted_value_handle: Optional[str] = None
    public_value1: int = 0
    public_value2: int = 0
    is_verified: bool = False
    decrypted_value: Optional[int] = None  # Only set once is_verified

@dataclass(frozen=True)
class RecordStats:
    """Aggregates derived from one record set"""
    participant_count: int = 0
    total_value: int = 0
    average_score: int = 0

@dataclass(frozen=True)
class LeaderboardEntry:
    """Contributor ranking by disclosed value"""
    rank: int
    creator: str
    total_value: int
    record_count: int

@dataclass(frozen=True)
class RecordSnapshot:
    """Records as of the last refresh plus the aggregates computed from them"""
    records: Tuple[MiningRecord, ...] = ()
    stats: RecordStats = field(default_factory=RecordStats)
    leaderboard: Tuple[LeaderboardEntry, ...] = ()
    refreshed_at: Optional[datetime] = None

    def get(self, record_id: str) -> Optional[MiningRecord]:
        """Look up a record by id"""
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    def __len__(self) -> int:
        return len(self.records)

@dataclass(frozen=True)
class SubmissionDraft:
    """Form values collected for a new record"""
    name: str = ""
    value: str = ""
    description: str = ""

    @property
    def is_ready(self) -> bool:
        """A draft needs a data type and a value before it can be mined"""
        return bool(self.name.strip()) and bool(self.value.strip())

    def update(self, **changes) -> 'SubmissionDraft':
        return replace(self, **changes)

def utc_now() -> datetime:
    return datetime.now(timezone.utc)
