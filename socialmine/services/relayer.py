"""Encryption relayer HTTP client"""
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from socialmine.config import RelayerSettings
from socialmine.errors import RelayerError
from socialmine.models.encryption import DecryptionOutcome, EncryptedInput, normalize_handle
from socialmine.services.encryption import EncryptionClient

logger = logging.getLogger(__name__)

UINT32_MAX = 2 ** 32 - 1

def seal_value(public_key, contract_address: str, user_address: str, value: int) -> bytes:
    """Encrypt a value under the relayer key, bound to a contract and account"""
    if not 0 <= value <= UINT32_MAX:
        raise ValueError(f"Value {value} does not fit in 32 bits")

    bound_value = f"{value}::contract::{contract_address}::user::{user_address}"
    return public_key.encrypt(
        bound_value.encode(),
        padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None
        )
    )

class RelayerClient(EncryptionClient):
    """Handles all relayer interactions: key material, input proofs and public decryption"""

    def __init__(self, base_url: str, api_key: Optional[str] = None, retries: int = 3,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.retries = max(retries, 1)
        self.session = session or requests.Session()
        self.key_material: Optional[Dict[str, Any]] = None
        self.public_key = None

    @classmethod
    def from_settings(cls, relayer_settings: RelayerSettings) -> 'RelayerClient':
        if not relayer_settings.url:
            raise RelayerError("RELAYER_URL setting is required")
        return cls(relayer_settings.url, relayer_settings.api_key, relayer_settings.retries)

    def initialize(self) -> Dict[str, Any]:
        """Fetch and load the public key values are sealed under"""
        response = self._make_request('GET', 'keyurl')
        key_material = response.get('response', response)
        try:
            self.public_key = serialization.load_pem_public_key(key_material['publicKey'].encode())
        except (KeyError, AttributeError, ValueError) as e:
            raise RelayerError(f"Relayer returned unusable key material: {e}")
        self.key_material = key_material
        return key_material

    def encrypt(self, contract_address: str, user_address: str, value: int) -> EncryptedInput:
        """
        Seal a 32-bit value locally and register the ciphertext for an input proof.

        The plaintext never leaves this process; the relayer only sees the
        sealed bytes and the addresses they are bound to.
        """
        if self.public_key is None:
            raise RelayerError("Relayer key material not loaded")

        sealed = seal_value(self.public_key, contract_address, user_address, value)
        response = self._make_request('POST', 'input-proof', {
            'contractAddress': contract_address,
            'userAddress': user_address,
            'ciphertexts': ['0x' + sealed.hex()],
            'bits': [32],
        })
        handles: List[str] = response.get('handles') or []
        if not handles or not response.get('inputProof'):
            raise RelayerError("Relayer returned no ciphertext handle")
        return EncryptedInput(ciphertext=normalize_handle(handles[0]), proof=response['inputProof'])

    def public_decrypt(self, handles: List[str], contract_address: str) -> DecryptionOutcome:
        """Request clear values and the decryption proof for ciphertext handles"""
        response = self._make_request('POST', 'public-decrypt', {
            'ciphertextHandles': handles,
            'contractAddress': contract_address,
        })
        try:
            clear_values = {
                normalize_handle(handle): int(value)
                for handle, value in response['clearValues'].items()
            }
            return DecryptionOutcome(
                clear_values=clear_values,
                abi_encoded_clear_values=response['abiEncodedClearValues'],
                decryption_proof=response['decryptionProof']
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RelayerError(f"Malformed decryption response: {e}")

    def _make_request(self, method: str, endpoint: str, payload: Optional[Dict] = None) -> dict:
        """Make request to the relayer with retries"""
        headers = {'Accept': 'application/json'}
        if self.api_key:
            headers['x-api-key'] = self.api_key

        for attempt in range(self.retries):
            try:
                response = self.session.request(
                    method,
                    f'{self.base_url}/v1/{endpoint}',
                    json=payload,
                    headers=headers
                )
                response.raise_for_status()
                return response.json()
            except requests.RequestException as e:
                if attempt == self.retries - 1:
                    raise RelayerError(f"Relayer request to {endpoint} failed: {e}")
                logger.warning(f"Retrying relayer request after error: {e}")
                time.sleep(1)
