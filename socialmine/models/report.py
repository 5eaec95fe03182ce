"""ActionReport model definition"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

class ActionReport(BaseModel):
    """
    Result of one controller action run from the command line.

    Attributes:
        action: The action that was run (refresh, submit, decrypt, check)
        ok: Whether the action reached a successful terminal state
        value: Record id for submissions, disclosed value for decryptions
        error_kind: Structured error tag when the action failed
        notification: Last notification shown to the user
        stats: Aggregates of the current record snapshot
        leaderboard: Contributor ranking of the current record snapshot
        records: Records of the current snapshot
    """
    action: str
    ok: bool = False
    value: Optional[Any] = None
    error_kind: Optional[str] = None
    notification: Dict[str, Any] = {}
    stats: Dict[str, Any] = {}
    leaderboard: List[Dict[str, Any]] = []
    records: List[Dict[str, Any]] = []
