"""In-memory ledger and relayer fakes shared by the tests."""

import asyncio
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

from socialmine.cache import RecordCache
from socialmine.controller import WorkflowController
from socialmine.errors import AlreadyVerifiedError, LedgerError, RelayerError, UserRejectedError
from socialmine.models.encryption import DecryptionOutcome, EncryptedInput, normalize_handle
from socialmine.models.record import MiningRecord
from socialmine.notifications import Notifier
from socialmine.scoring import SnapshotScorer
from socialmine.services.encryption import EncryptionBridge, EncryptionClient
from socialmine.services.ledger import LedgerReader, LedgerWriter, PendingTransaction
from socialmine.services.wallet import LocalWallet, Signer

# Well-known development key; never holds funds
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

SUCCESS_DELAY = 0.05
ERROR_DELAY = 0.08


class FakePendingTransaction(PendingTransaction):
    def __init__(self, ledger: "FakeLedger", label: str, apply, revert: bool = False):
        self.ledger = ledger
        self.tx_hash = f"0x{len(ledger.writes):064x}"
        self.label = label
        self.apply = apply
        self.revert = revert

    async def await_inclusion(self) -> None:
        if self.ledger.hold_inclusion is not None:
            await self.ledger.hold_inclusion.wait()
        await asyncio.sleep(0)
        if self.revert:
            raise LedgerError(f"{self.label} reverted on-chain")
        self.apply()
        self.ledger.included.append(self.label)


class FakeLedger(LedgerReader, LedgerWriter):
    """Record contract simulation; state changes only on inclusion."""

    contract_address = CONTRACT_ADDRESS

    def __init__(self):
        self.records: Dict[str, MiningRecord] = {}
        self.unreadable: Set[str] = set()
        self.writes: List[Tuple[str, str]] = []
        self.included: List[str] = []
        self.reject_signing = False
        self.revert_writes = False
        self.fail_listing = False
        self.available = True
        self.hold_inclusion: Optional[asyncio.Event] = None
        self.clock = 1_700_000_000

    def add_record(self, record_id: str, name: str = "Likes", creator: str = "0xABC",
                   handle: Optional[str] = None, verified: bool = False,
                   value: Optional[int] = None) -> MiningRecord:
        self.clock += 1
        record = MiningRecord(
            id=record_id,
            name=name,
            description="daily",
            creator=creator,
            timestamp=self.clock,
            encrypted_value_handle=normalize_handle(handle or f"{len(self.records) + 1:064x}"),
            is_verified=verified,
            decrypted_value=value if verified else None,
        )
        self.records[record_id] = record
        return record

    def mark_verified(self, record_id: str, value: int) -> None:
        self.records[record_id] = replace(self.records[record_id], is_verified=True, decrypted_value=value)

    async def list_record_ids(self) -> List[str]:
        await asyncio.sleep(0)
        if self.fail_listing:
            raise LedgerError("RPC unavailable")
        return list(self.records)

    async def get_record(self, record_id: str) -> MiningRecord:
        await asyncio.sleep(0)
        if record_id in self.unreadable:
            raise LedgerError(f"Cannot decode record {record_id}")
        if record_id not in self.records:
            raise LedgerError(f"Record {record_id} does not exist")
        return self.records[record_id]

    async def get_ciphertext_handle(self, record_id: str) -> str:
        return (await self.get_record(record_id)).encrypted_value_handle

    async def is_available(self) -> bool:
        return self.available

    async def create_record(self, record_id, name, ciphertext, proof, public_value1,
                            public_value2, description) -> PendingTransaction:
        await asyncio.sleep(0)
        if self.reject_signing:
            raise UserRejectedError("user rejected transaction")
        self.writes.append(("create", record_id))

        def apply():
            self.clock += 1
            self.records[record_id] = MiningRecord(
                id=record_id,
                name=name,
                description=description,
                creator="0xABC",
                timestamp=self.clock,
                encrypted_value_handle=ciphertext,
                public_value1=public_value1,
                public_value2=public_value2,
            )

        return FakePendingTransaction(self, f"create:{record_id}", apply, self.revert_writes)

    async def submit_decryption_proof(self, record_id, clear_values, proof) -> PendingTransaction:
        await asyncio.sleep(0)
        if self.reject_signing:
            raise UserRejectedError("user rejected transaction")
        if self.records[record_id].is_verified:
            raise AlreadyVerifiedError("execution reverted: Data already verified")
        self.writes.append(("verify", record_id))

        def apply():
            # Verification is one-way on the contract as well
            if not self.records[record_id].is_verified:
                self.mark_verified(record_id, int(clear_values, 16))

        return FakePendingTransaction(self, f"verify:{record_id}", apply, self.revert_writes)


class FakeRelayerClient(EncryptionClient):
    """Encryption client stand-in that remembers plaintexts by handle."""

    def __init__(self):
        self.plaintexts: Dict[str, int] = {}
        self.encrypt_calls: List[Tuple[str, str, int]] = []
        self.decrypt_calls: List[List[str]] = []
        self.fail_initialize = False
        self.fail_decrypt = False

    def initialize(self):
        if self.fail_initialize:
            raise RelayerError("key material unavailable")
        return {"publicKey": "0x00"}

    def encrypt(self, contract_address: str, user_address: str, value: int) -> EncryptedInput:
        self.encrypt_calls.append((contract_address, user_address, value))
        handle = normalize_handle(f"{0xE000 + len(self.encrypt_calls):064x}")
        self.plaintexts[handle] = value
        return EncryptedInput(ciphertext=handle, proof="0x1234")

    def public_decrypt(self, handles: List[str], contract_address: str) -> DecryptionOutcome:
        self.decrypt_calls.append(list(handles))
        if self.fail_decrypt:
            raise RelayerError("Relayer request to public-decrypt failed: 503")
        values = {handle: self.plaintexts[handle] for handle in handles}
        return DecryptionOutcome(
            clear_values=values,
            abi_encoded_clear_values=hex(values[handles[0]]),
            decryption_proof="0xfeed",
        )


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def relayer():
    return FakeRelayerClient()


@pytest.fixture
def wallet():
    return LocalWallet(Signer(TEST_PRIVATE_KEY))


@pytest.fixture
def seed(ledger, relayer):
    """Add a record to the ledger whose plaintext the relayer can release."""

    def _seed(record_id: str, value: int, verified: bool = False, creator: str = "0xABC"):
        record = ledger.add_record(record_id, creator=creator, verified=verified, value=value)
        relayer.plaintexts[record.encrypted_value_handle] = value
        return record

    return _seed


@pytest_asyncio.fixture
async def controller(ledger, relayer, wallet):
    bridge = EncryptionBridge(relayer)
    await bridge.initialize()
    return WorkflowController(
        wallet=wallet,
        reader=ledger,
        bridge=bridge,
        signed_ledger=lambda: ledger,
        notifier=Notifier(SUCCESS_DELAY, ERROR_DELAY),
        cache=RecordCache(ledger, SnapshotScorer(leaderboard_size=5)),
    )
