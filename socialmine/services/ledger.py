"""Read and signed-write accessors for the record contract"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError

from socialmine.config import LedgerSettings
from socialmine.errors import AlreadyVerifiedError, LedgerError
from socialmine.models.encryption import normalize_handle
from socialmine.models.record import MiningRecord
from socialmine.services.wallet import Signer

logger = logging.getLogger(__name__)

# Revert reasons the contract uses for conditions the workflows handle
REVERT_ERRORS = {
    'data already verified': AlreadyVerifiedError,
}

RECORD_CONTRACT_ABI = [
    {
        "type": "function", "name": "getAllBusinessIds", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string[]"}],
    },
    {
        "type": "function", "name": "getBusinessData", "stateMutability": "view",
        "inputs": [{"name": "businessId", "type": "string"}],
        "outputs": [
            {"name": "name", "type": "string"},
            {"name": "publicValue1", "type": "uint256"},
            {"name": "publicValue2", "type": "uint256"},
            {"name": "description", "type": "string"},
            {"name": "creator", "type": "address"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "isVerified", "type": "bool"},
            {"name": "decryptedValue", "type": "uint32"},
        ],
    },
    {
        "type": "function", "name": "getEncryptedValue", "stateMutability": "view",
        "inputs": [{"name": "businessId", "type": "string"}],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
    {
        "type": "function", "name": "isAvailable", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function", "name": "createBusinessData", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "businessId", "type": "string"},
            {"name": "name", "type": "string"},
            {"name": "encryptedValue", "type": "bytes32"},
            {"name": "inputProof", "type": "bytes"},
            {"name": "publicValue1", "type": "uint256"},
            {"name": "publicValue2", "type": "uint256"},
            {"name": "description", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function", "name": "verifyDecryption", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "businessId", "type": "string"},
            {"name": "abiEncodedClearValue", "type": "bytes"},
            {"name": "decryptionProof", "type": "bytes"},
        ],
        "outputs": [],
    },
]

class PendingTransaction(ABC):
    """A submitted transaction that has not necessarily been included yet"""
    tx_hash: str

    @abstractmethod
    async def await_inclusion(self) -> None:
        """
        Wait until the transaction is included.

        Raises:
            LedgerError: If the transaction reverted
        """

class LedgerReader(ABC):
    """Read-only accessor to the on-chain record store"""
    contract_address: Optional[str] = None

    @abstractmethod
    async def list_record_ids(self) -> List[str]:
        ...

    @abstractmethod
    async def get_record(self, record_id: str) -> MiningRecord:
        ...

    @abstractmethod
    async def get_ciphertext_handle(self, record_id: str) -> str:
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        ...

class LedgerWriter(ABC):
    """Signed-write accessor to the on-chain record store"""

    @abstractmethod
    async def create_record(self, record_id: str, name: str, ciphertext: str, proof: str,
                            public_value1: int, public_value2: int,
                            description: str) -> PendingTransaction:
        ...

    @abstractmethod
    async def submit_decryption_proof(self, record_id: str, clear_values: str,
                                      proof: str) -> PendingTransaction:
        ...

def classify_revert(error: ContractLogicError) -> LedgerError:
    """Turn a contract revert into a tagged ledger error"""
    reason = getattr(error, 'message', None) or str(error)
    lowered = reason.lower()
    for marker, error_class in REVERT_ERRORS.items():
        if marker in lowered:
            return error_class(reason)
    return LedgerError(reason)

class Web3PendingTransaction(PendingTransaction):
    def __init__(self, w3: AsyncWeb3, tx_hash: bytes, label: str):
        self.w3 = w3
        self._raw_hash = tx_hash
        self.tx_hash = AsyncWeb3.to_hex(tx_hash)
        self.label = label

    async def await_inclusion(self) -> None:
        receipt = await self.w3.eth.wait_for_transaction_receipt(self._raw_hash)
        if receipt['status'] != 1:
            raise LedgerError(f"{self.label} reverted on-chain ({self.tx_hash})")
        logger.info(f"[Ledger] {self.label} included in block {receipt['blockNumber']}")

class Web3LedgerGateway(LedgerReader):
    """Record contract accessor over an async JSON-RPC provider"""

    def __init__(self, provider_url: str, contract_address: Optional[str],
                 signer: Optional[Signer] = None, gas_limit_fallback: int = 2_000_000,
                 gas_buffer: float = 1.2, w3: Optional[AsyncWeb3] = None):
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(provider_url))
        self.signer = signer
        self.gas_limit_fallback = gas_limit_fallback
        self.gas_buffer = gas_buffer

        if contract_address:
            self.contract_address = AsyncWeb3.to_checksum_address(contract_address)
            self.contract = self.w3.eth.contract(address=self.contract_address, abi=RECORD_CONTRACT_ABI)
        else:
            logger.warning("CONTRACT_ADDRESS not set; ledger reads will fail")
            self.contract_address = None
            self.contract = None

    @classmethod
    def from_settings(cls, ledger_settings: LedgerSettings,
                      signer: Optional[Signer] = None) -> 'Web3LedgerGateway':
        return cls(
            provider_url=ledger_settings.provider_url,
            contract_address=ledger_settings.contract_address,
            signer=signer,
            gas_limit_fallback=ledger_settings.gas_limit_fallback,
            gas_buffer=ledger_settings.gas_buffer
        )

    def _require_contract(self):
        if self.contract is None:
            raise LedgerError("Contract not loaded")
        return self.contract

    async def list_record_ids(self) -> List[str]:
        contract = self._require_contract()
        return list(await contract.functions.getAllBusinessIds().call())

    async def get_record(self, record_id: str) -> MiningRecord:
        contract = self._require_contract()
        data = await contract.functions.getBusinessData(record_id).call()
        handle = await self.get_ciphertext_handle(record_id)
        return self._to_record(record_id, data, handle)

    async def get_ciphertext_handle(self, record_id: str) -> str:
        contract = self._require_contract()
        handle = await contract.functions.getEncryptedValue(record_id).call()
        return normalize_handle(handle)

    async def is_available(self) -> bool:
        contract = self._require_contract()
        if not await self.w3.is_connected():
            return False
        return bool(await contract.functions.isAvailable().call())

    def writer(self) -> Optional['Web3LedgerWriter']:
        """Signed accessor, or None when no signer or contract is configured"""
        if self.signer is None or self.contract is None:
            return None
        return Web3LedgerWriter(self, self.signer)

    @staticmethod
    def _to_record(record_id: str, data: Sequence[Any], handle: str) -> MiningRecord:
        name, public_value1, public_value2, description, creator, timestamp, is_verified, decrypted = data
        return MiningRecord(
            id=record_id,
            name=name,
            description=description,
            creator=creator,
            timestamp=int(timestamp),
            encrypted_value_handle=handle,
            public_value1=int(public_value1 or 0),
            public_value2=int(public_value2 or 0),
            is_verified=bool(is_verified),
            decrypted_value=int(decrypted or 0) if is_verified else None
        )

class Web3LedgerWriter(LedgerWriter):
    """Builds, signs and sends record contract transactions"""

    def __init__(self, gateway: Web3LedgerGateway, signer: Signer):
        self.gateway = gateway
        self.signer = signer

    async def create_record(self, record_id: str, name: str, ciphertext: str, proof: str,
                            public_value1: int, public_value2: int,
                            description: str) -> PendingTransaction:
        func = self.gateway.contract.functions.createBusinessData(
            record_id, name, ciphertext, proof, public_value1, public_value2, description
        )
        return await self._transact(func, f"createBusinessData({record_id})")

    async def submit_decryption_proof(self, record_id: str, clear_values: str,
                                      proof: str) -> PendingTransaction:
        func = self.gateway.contract.functions.verifyDecryption(record_id, clear_values, proof)
        return await self._transact(func, f"verifyDecryption({record_id})")

    async def _transact(self, func, label: str) -> PendingTransaction:
        w3 = self.gateway.w3
        account = self.signer.address

        try:
            gas_estimate = await func.estimate_gas({'from': account})
            gas_limit = int(gas_estimate * self.gateway.gas_buffer)
        except ContractLogicError as e:
            raise classify_revert(e) from e
        except Exception as e:
            logger.warning(f"Gas estimation failed, using fallback: {e}")
            gas_limit = self.gateway.gas_limit_fallback

        tx_data = await func.build_transaction({
            'from': account,
            'chainId': await w3.eth.chain_id,
            'gas': gas_limit,
            'gasPrice': await w3.eth.gas_price,
            'nonce': await w3.eth.get_transaction_count(account),
        })

        # Approval may block on user input
        signed = await asyncio.to_thread(self.signer.sign, tx_data)

        try:
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise classify_revert(e) from e

        pending = Web3PendingTransaction(w3, tx_hash, label)
        logger.info(f"[Ledger] {label} sent: {pending.tx_hash}")
        return pending
