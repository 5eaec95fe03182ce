"""Encrypted-data lifecycle: submission, decryption and record refresh"""
import itertools
import logging
import re
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from socialmine.cache import RecordCache
from socialmine.config import Settings
from socialmine.errors import (
    AlreadyVerifiedError,
    DecryptionFailedError,
    ErrorKind,
    LedgerError,
    OperationInProgressError,
    SocialMineError,
    SubmissionFailedError,
)
from socialmine.guards import KeyedGuard, OperationGuard
from socialmine.models.record import MiningRecord, RecordSnapshot, SubmissionDraft
from socialmine.notifications import NotificationState, Notifier
from socialmine.scoring import SnapshotScorer
from socialmine.services.encryption import EncryptionBridge
from socialmine.services.ledger import LedgerReader, LedgerWriter, Web3LedgerGateway
from socialmine.services.relayer import RelayerClient
from socialmine.services.wallet import Approval, LocalWallet, Signer

logger = logging.getLogger(__name__)

# User-facing messages
MSG_NOT_CONNECTED = "Please connect wallet first"
MSG_CREATING = "Creating encrypted social data..."
MSG_CONFIRMING = "Waiting for transaction confirmation..."
MSG_CREATED = "Social data created successfully!"
MSG_REJECTED = "Transaction rejected by user"
MSG_DRAFT_INCOMPLETE = "Data type and value are required"
MSG_CHECKING = "Checking verification status..."
MSG_VERIFYING = "Verifying decryption on-chain..."
MSG_DECRYPTED = "Data decrypted and verified successfully!"
MSG_ALREADY_VERIFIED = "Data already verified on-chain"
MSG_VERIFIED_ELSEWHERE = "Data is already verified on-chain"
MSG_LOAD_FAILED = "Failed to load data"
MSG_AVAILABLE = "Contract is available and ready!"
MSG_UNAVAILABLE = "Availability check failed"
MSG_BRIDGE_INIT_FAILED = "FHE initialization failed"

_INTEGER_PREFIX = re.compile(r'^\s*([+-]?\d+)')
_sequence = itertools.count()

def parse_raw_value(raw: Any) -> int:
    """
    Best-effort integer parse of a form value.

    The leading integer of the text is used ("42abc" -> 42, "3.9" -> 3).
    Anything without one, including empty input, becomes 0.
    """
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    match = _INTEGER_PREFIX.match(str(raw if raw is not None else ''))
    if not match:
        logger.info(f"Value {raw!r} is not numeric, submitting 0")
        return 0
    return int(match.group(1))

def generate_record_id(prefix: str, now_ms: Optional[int] = None) -> str:
    """Record id from a millisecond timestamp, a process-wide sequence and a random suffix"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix}-{now_ms}-{next(_sequence)}-{secrets.token_hex(3)}"

@dataclass(frozen=True)
class SubmissionResult:
    """Terminal state of a submission workflow"""
    record_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error_kind is None and self.record_id is not None

class DecryptionStatus(str, Enum):
    RETURN_CACHED = "return_cached"
    SUCCESS = "success"
    ERROR = "error"

@dataclass(frozen=True)
class DecryptionResult:
    """Terminal state of a decryption workflow"""
    record_id: str
    status: DecryptionStatus
    value: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != DecryptionStatus.ERROR

class WorkflowController:
    """
    Owns the submission and decryption workflows.

    The presentation layer reads `snapshot`, `notification` and the busy
    flags, and drives everything else through the public coroutines. No
    workflow error escapes this class; each terminal error becomes one
    notification and a structured result.
    """

    def __init__(self, wallet: LocalWallet, reader: LedgerReader, bridge: EncryptionBridge,
                 signed_ledger: Callable[[], Optional[LedgerWriter]],
                 notifier: Optional[Notifier] = None, cache: Optional[RecordCache] = None,
                 record_id_prefix: str = "social"):
        self.wallet = wallet
        self.reader = reader
        self.bridge = bridge
        self.signed_ledger = signed_ledger
        self.notifier = notifier or Notifier()
        self.cache = cache or RecordCache(reader)
        self.record_id_prefix = record_id_prefix

        self.draft = SubmissionDraft()
        self.last_decrypted: Dict[str, int] = {}

        self._initialization = OperationGuard("initialization")
        self._submission = OperationGuard("submission")
        self._decryption = KeyedGuard("decryption")

    @classmethod
    def from_settings(cls, settings: Settings, approve: Optional[Approval] = None) -> 'WorkflowController':
        """Assemble the controller and its ledger, relayer and wallet clients"""
        signer = Signer(settings.SIGNER_PRIVATE_KEY, approve) if settings.SIGNER_PRIVATE_KEY else None
        gateway = Web3LedgerGateway.from_settings(settings.ledger_settings, signer)
        bridge = EncryptionBridge(RelayerClient.from_settings(settings.relayer_settings))

        return cls(
            wallet=LocalWallet(signer),
            reader=gateway,
            bridge=bridge,
            signed_ledger=gateway.writer,
            notifier=Notifier(settings.SUCCESS_HIDE_DELAY, settings.ERROR_HIDE_DELAY),
            cache=RecordCache(gateway, SnapshotScorer(settings.LEADERBOARD_SIZE)),
            record_id_prefix=settings.RECORD_ID_PREFIX
        )

    # Read-only state for the presentation layer

    @property
    def snapshot(self) -> RecordSnapshot:
        return self.cache.snapshot

    @property
    def notification(self) -> NotificationState:
        return self.notifier.state

    @property
    def submitting(self) -> bool:
        return self._submission.busy

    @property
    def decrypting(self) -> bool:
        return self._decryption.busy

    @property
    def refreshing(self) -> bool:
        return self.cache.refreshing

    @property
    def initializing(self) -> bool:
        return self._initialization.busy

    def is_decrypting(self, record_id: str) -> bool:
        return self._decryption.is_held(record_id)

    def _identity(self, actor: Optional[str] = None) -> Optional[str]:
        """Connected identity, or None when disconnected or when actor is another account"""
        state = self.wallet.connection_state()
        if not state.connected:
            return None
        if actor is not None and actor.lower() != state.identity.lower():
            logger.warning(f"Actor {actor} is not the connected account {state.identity}")
            return None
        return state.identity

    def _contract_scope(self) -> str:
        if not self.reader.contract_address:
            raise LedgerError("Contract address unavailable")
        return self.reader.contract_address

    # Startup

    async def initialize(self) -> bool:
        """Initialize the encryption bridge for a connected wallet, then load records"""
        if self._identity() is None:
            return False
        try:
            with self._initialization.hold():
                if not self.bridge.initialized:
                    await self.bridge.initialize()
        except OperationInProgressError:
            return False
        except Exception as e:
            logger.error(f"Encryption bridge initialization failed: {e}")
            self.notifier.error(MSG_BRIDGE_INIT_FAILED)
            return False

        await self.refresh()
        return True

    # Refresh

    async def refresh(self) -> RecordSnapshot:
        """Rebuild the record snapshot; on failure the previous snapshot is kept"""
        try:
            return await self.cache.refresh()
        except Exception as e:
            logger.error(f"Failed to load data: {e}")
            self.notifier.error(MSG_LOAD_FAILED)
            return self.cache.snapshot

    async def _refresh_after_workflow(self) -> None:
        # The workflow's own terminal notification reports the outcome
        try:
            await self.cache.refresh()
        except Exception as e:
            logger.error(f"Refresh after workflow failed: {e}")

    async def check_availability(self) -> bool:
        try:
            available = await self.reader.is_available()
        except Exception as e:
            logger.error(f"Availability check failed: {e}")
            available = False

        if available:
            self.notifier.success(MSG_AVAILABLE)
        else:
            self.notifier.error(MSG_UNAVAILABLE)
        return available

    # Submission

    def update_draft(self, **changes: str) -> SubmissionDraft:
        self.draft = self.draft.update(**changes)
        return self.draft

    async def submit_draft(self) -> SubmissionResult:
        """Submit the current form values"""
        draft = self.draft
        if not draft.is_ready:
            self.notifier.error(MSG_DRAFT_INCOMPLETE)
            return SubmissionResult(error_kind=ErrorKind.SUBMISSION_FAILED, message=MSG_DRAFT_INCOMPLETE)
        return await self.submit(draft.name, draft.value, draft.description)

    async def submit(self, category: str, raw_value: Any, description: str,
                     actor: Optional[str] = None) -> SubmissionResult:
        """
        Encrypt a value and store it as a new record.

        Returns:
            SubmissionResult with the new record id, or the error kind and
            the message that was shown
        """
        identity = self._identity(actor)
        if identity is None:
            self.notifier.error(MSG_NOT_CONNECTED)
            return SubmissionResult(error_kind=ErrorKind.NOT_CONNECTED, message=MSG_NOT_CONNECTED)

        try:
            with self._submission.hold():
                return await self._run_submission(category, raw_value, description, identity)
        except OperationInProgressError as e:
            logger.warning(e.message)
            return SubmissionResult(error_kind=e.kind, message=e.message)

    async def _run_submission(self, category: str, raw_value: Any, description: str,
                              identity: str) -> SubmissionResult:
        self.notifier.pending(MSG_CREATING)
        try:
            writer = self.signed_ledger()
            if writer is None:
                raise SubmissionFailedError("Failed to get contract with signer")

            value = parse_raw_value(raw_value)
            encrypted = await self.bridge.encrypt(self._contract_scope(), identity, value)
            record_id = generate_record_id(self.record_id_prefix)

            tx = await writer.create_record(
                record_id,
                category,
                encrypted.ciphertext,
                encrypted.proof,
                0,
                0,
                description
            )
            self.notifier.pending(MSG_CONFIRMING)
            await tx.await_inclusion()
        except Exception as e:
            kind, message = self._describe_failure(e, ErrorKind.SUBMISSION_FAILED, "Submission failed")
            logger.error(f"Error submitting record: {e}")
            self.notifier.error(message)
            return SubmissionResult(error_kind=kind, message=message)

        logger.info(f"Record {record_id} created by {identity}")
        await self._refresh_after_workflow()
        self.draft = SubmissionDraft()
        self.notifier.success(MSG_CREATED)
        return SubmissionResult(record_id=record_id, message=MSG_CREATED)

    # Decryption

    async def decrypt(self, record_id: str) -> DecryptionResult:
        """
        Disclose a record's value through an on-chain checked decryption proof.

        Records that are already verified return their stored value without
        running the protocol again.
        """
        if self._identity() is None:
            self.notifier.error(MSG_NOT_CONNECTED)
            return DecryptionResult(record_id, DecryptionStatus.ERROR,
                                    error_kind=ErrorKind.NOT_CONNECTED, message=MSG_NOT_CONNECTED)

        try:
            with self._decryption.hold(record_id):
                result = await self._run_decryption(record_id)
        except OperationInProgressError as e:
            logger.warning(e.message)
            return DecryptionResult(record_id, DecryptionStatus.ERROR, error_kind=e.kind, message=e.message)

        if result.value is not None:
            self.last_decrypted[record_id] = result.value
        return result

    async def _run_decryption(self, record_id: str) -> DecryptionResult:
        self.notifier.pending(MSG_CHECKING)
        try:
            record = await self.reader.get_record(record_id)
        except Exception as e:
            return self._decryption_failed(record_id, e)

        if record.is_verified:
            return self._return_cached(record, MSG_ALREADY_VERIFIED)

        try:
            writer = self.signed_ledger()
            if writer is None:
                raise DecryptionFailedError("Failed to get contract with signer")
            handle = await self.reader.get_ciphertext_handle(record_id)

            async def submit_proof(clear_values: str, proof: str) -> None:
                self.notifier.pending(MSG_VERIFYING)
                tx = await writer.submit_decryption_proof(record_id, clear_values, proof)
                await tx.await_inclusion()

            outcome = await self.bridge.verify_decryption([handle], self._contract_scope(), submit_proof)
            value = outcome.value_for(handle)
        except Exception as e:
            return await self._recover_decryption(record_id, e)

        logger.info(f"Record {record_id} decrypted and verified")
        await self._refresh_after_workflow()
        self.notifier.success(MSG_DECRYPTED)
        return DecryptionResult(record_id, DecryptionStatus.SUCCESS, value, message=MSG_DECRYPTED)

    async def _recover_decryption(self, record_id: str, error: Exception) -> DecryptionResult:
        """Another actor may have verified the record while this workflow ran"""
        logger.warning(f"Decryption of {record_id} failed ({error}); re-checking verification")
        try:
            record: Optional[MiningRecord] = await self.reader.get_record(record_id)
        except Exception as e:
            logger.error(f"Re-check of record {record_id} failed: {e}")
            record = None

        if record is not None and record.is_verified:
            await self._refresh_after_workflow()
            return self._return_cached(record, MSG_VERIFIED_ELSEWHERE)

        if isinstance(error, AlreadyVerifiedError):
            # The contract refused a second proof but this node has not caught up
            await self._refresh_after_workflow()
            self.notifier.success(MSG_VERIFIED_ELSEWHERE)
            return DecryptionResult(record_id, DecryptionStatus.RETURN_CACHED, message=MSG_VERIFIED_ELSEWHERE)

        return self._decryption_failed(record_id, error)

    def _return_cached(self, record: MiningRecord, message: str) -> DecryptionResult:
        self.notifier.success(message)
        return DecryptionResult(record.id, DecryptionStatus.RETURN_CACHED, record.decrypted_value, message=message)

    def _decryption_failed(self, record_id: str, error: Exception) -> DecryptionResult:
        kind, message = self._describe_failure(error, ErrorKind.DECRYPTION_FAILED, "Decryption failed")
        logger.error(f"Error decrypting record {record_id}: {error}")
        self.notifier.error(message)
        return DecryptionResult(record_id, DecryptionStatus.ERROR, error_kind=kind, message=message)

    @staticmethod
    def _describe_failure(error: Exception, fallback: ErrorKind, prefix: str):
        """Map an error to its kind and the message shown for it"""
        kind = error.kind if isinstance(error, SocialMineError) else fallback
        if kind == ErrorKind.USER_REJECTED:
            return kind, MSG_REJECTED
        if kind in (ErrorKind.NOT_CONNECTED, ErrorKind.BRIDGE_UNAVAILABLE):
            return kind, error.message
        reason = error.message if isinstance(error, SocialMineError) else str(error)
        return fallback, f"{prefix}: {reason or 'Unknown error'}"
