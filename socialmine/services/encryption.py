"""Bridge between the workflows and the homomorphic-encryption client"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List

from socialmine.errors import BridgeUnavailableError, RelayerError
from socialmine.models.encryption import DecryptionOutcome, EncryptedInput, normalize_handle

logger = logging.getLogger(__name__)

# Receives (abi_encoded_clear_values, decryption_proof) and settles once the
# proof has been included on the ledger
SubmitProof = Callable[[str, str], Awaitable[None]]

class EncryptionClient(ABC):
    """
    Client side of the encryption service.

    Implementations seal plaintext values in-process; only ciphertext and
    proofs may leave the client.
    """

    @abstractmethod
    def initialize(self) -> Dict[str, Any]:
        """Load the public key material needed before encrypting"""

    @abstractmethod
    def encrypt(self, contract_address: str, user_address: str, value: int) -> EncryptedInput:
        """Seal a 32-bit value for one contract and account, with its input proof"""

    @abstractmethod
    def public_decrypt(self, handles: List[str], contract_address: str) -> DecryptionOutcome:
        """Release clear values and the decryption proof for ciphertext handles"""

class EncryptionBridge:
    """Wraps encrypt and verify-decryption around an encryption client"""

    def __init__(self, client: EncryptionClient):
        self.client = client
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        await asyncio.to_thread(self.client.initialize)
        self._initialized = True
        logger.info("Encryption bridge initialized")

    def _require_ready(self) -> None:
        if not self._initialized:
            raise BridgeUnavailableError("Encryption service is not initialized")

    async def encrypt(self, contract_scope: str, identity: str, value: int) -> EncryptedInput:
        """Encrypt a value for one contract and account; ciphertext and proof come back together"""
        self._require_ready()
        return await asyncio.to_thread(self.client.encrypt, contract_scope, identity, value)

    async def verify_decryption(self, handles: List[str], contract_scope: str,
                                submit: SubmitProof) -> DecryptionOutcome:
        """
        Run public decryption for ciphertext handles and settle the proof on-chain.

        The relayer releases clear values together with a proof; both are
        handed to submit, and the clear values are only returned once submit
        has settled.

        Raises:
            BridgeUnavailableError: If the bridge has not been initialized
            RelayerError: If the relayer cannot produce decryption material
        """
        self._require_ready()
        handles = [normalize_handle(handle) for handle in handles]
        outcome = await asyncio.to_thread(self.client.public_decrypt, handles, contract_scope)

        missing = [handle for handle in handles if handle not in outcome.clear_values]
        if missing:
            raise RelayerError(f"No clear value released for {', '.join(missing)}")

        await submit(outcome.abi_encoded_clear_values, outcome.decryption_proof)
        return outcome
