"""Account provider and transaction signer"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from eth_account import Account

from socialmine.errors import UserRejectedError

logger = logging.getLogger(__name__)

Approval = Callable[[Dict[str, Any]], bool]

@dataclass(frozen=True)
class ConnectionState:
    """Wallet connection as seen by the controller"""
    connected: bool = False
    identity: Optional[str] = None

class Signer:
    """Signs ledger transactions with a local key after an approval check"""

    def __init__(self, private_key: str, approve: Optional[Approval] = None):
        self._account = Account.from_key(private_key)
        self.approve = approve

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, transaction: Dict[str, Any]):
        """
        Sign a built transaction.

        Raises:
            UserRejectedError: If the approval callback declines
        """
        if self.approve is not None and not self.approve(transaction):
            logger.info(f"Signature declined for transaction to {transaction.get('to')}")
            raise UserRejectedError("user rejected transaction")
        return self._account.sign_transaction(transaction)

class LocalWallet:
    """Account provider backed by an optional local signer"""

    def __init__(self, signer: Optional[Signer] = None):
        self.signer = signer
        self._connected = signer is not None

    def connection_state(self) -> ConnectionState:
        if not self._connected or self.signer is None:
            return ConnectionState()
        return ConnectionState(connected=True, identity=self.signer.address)

    def connect(self) -> ConnectionState:
        self._connected = self.signer is not None
        return self.connection_state()

    def disconnect(self) -> None:
        self._connected = False

def prompt_approval(transaction: Dict[str, Any]) -> bool:
    """Ask on stdin before signing"""
    answer = input(
        f"Sign transaction to {transaction.get('to')} (gas {transaction.get('gas')})? [y/N] "
    )
    return answer.strip().lower() in ('y', 'yes')
