"""Error taxonomy for the encrypted-data workflows"""
from enum import Enum


class ErrorKind(str, Enum):
    """Structured tag attached to every workflow failure"""
    NOT_CONNECTED = "not_connected"
    USER_REJECTED = "user_rejected"
    SUBMISSION_FAILED = "submission_failed"
    DECRYPTION_FAILED = "decryption_failed"
    ALREADY_VERIFIED = "already_verified"
    PARTIAL_FETCH_FAILURE = "partial_fetch_failure"
    BRIDGE_UNAVAILABLE = "bridge_unavailable"
    OPERATION_IN_PROGRESS = "operation_in_progress"


class SocialMineError(Exception):
    """Base exception for ledger, relayer and workflow errors"""
    kind: ErrorKind = ErrorKind.SUBMISSION_FAILED

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class NotConnectedError(SocialMineError):
    """Please connect wallet first"""
    kind = ErrorKind.NOT_CONNECTED


class UserRejectedError(SocialMineError):
    """Transaction rejected by user"""
    kind = ErrorKind.USER_REJECTED


class SubmissionFailedError(SocialMineError):
    """Submission failed"""
    kind = ErrorKind.SUBMISSION_FAILED


class DecryptionFailedError(SocialMineError):
    """Decryption failed"""
    kind = ErrorKind.DECRYPTION_FAILED


class AlreadyVerifiedError(SocialMineError):
    """Data already verified on-chain"""
    kind = ErrorKind.ALREADY_VERIFIED


class BridgeUnavailableError(SocialMineError):
    """Encryption bridge is not initialized"""
    kind = ErrorKind.BRIDGE_UNAVAILABLE


class OperationInProgressError(SocialMineError):
    """Operation already in progress"""
    kind = ErrorKind.OPERATION_IN_PROGRESS


class LedgerError(SocialMineError):
    """Ledger call or transaction failed"""


class RelayerError(SocialMineError):
    """Encryption relayer request failed"""
