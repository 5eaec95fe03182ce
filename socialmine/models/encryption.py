"""Encryption bridge payloads"""
from dataclasses import dataclass, field
from typing import Dict

@dataclass(frozen=True)
class EncryptedInput:
    """Ciphertext handle and the validity proof that must travel with it"""
    ciphertext: str
    proof: str

@dataclass(frozen=True)
class DecryptionOutcome:
    """Clear values released by the relayer, keyed by ciphertext handle"""
    clear_values: Dict[str, int] = field(default_factory=dict)
    abi_encoded_clear_values: str = "0x"
    decryption_proof: str = "0x"

    def value_for(self, handle: str) -> int:
        """Clear value for a handle; handles compare case-insensitively"""
        return self.clear_values[normalize_handle(handle)]

def normalize_handle(handle) -> str:
    """Render a ciphertext handle as a lower-case 0x-prefixed hex string"""
    if isinstance(handle, (bytes, bytearray)):
        handle = '0x' + bytes(handle).hex()
    handle = str(handle).lower()
    return handle if handle.startswith('0x') else '0x' + handle
