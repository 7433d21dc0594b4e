from __future__ import annotations

from .errors import NothingToClaimError
from .host import Bank, Coin, Transfer
from .identity import Identity


class PrizeVault:
    """
    The prize is whatever the contract holds in the payout currency at claim
    time; nothing is stored separately. A payout always moves the entire
    balance so no residue is left behind.
    """

    def __init__(self, bank: Bank, contract_address: Identity, denom: str) -> None:
        self._bank = bank
        self.contract_address = contract_address
        self.denom = denom

    def balance(self) -> int:
        return self._bank.balance(self.contract_address, self.denom)

    def payout(self, winner: Identity) -> Transfer:
        amount = self.balance()
        if amount == 0:
            raise NothingToClaimError()
        return Transfer(recipient=winner, coin=Coin(self.denom, amount))
