"""
External dispatch for the raffle.

Messages use the JSON shape clients send, e.g. {"buy_ticket": {}} or
{"with_permit": {"permit": ..., "query": {"get_secret": {}}}}. Each execute
call runs inside one Transaction: sent funds are credited to the contract,
the operation runs, its transfers are applied, and everything commits as a
single batch. Any failure discards the whole call.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .access import AccessControl, PermitRevocations
from .errors import DomainError, InvalidMessageError
from .host import BlockEnv, Coin, LedgerBank, MessageInfo, Response
from .identity import Identity
from .manager import RaffleManager, instantiate
from .project_constants import PAYOUT_DENOM
from .state import RaffleStorage
from .stores import KeyValueStore, Transaction
from .vault import PrizeVault

log = logging.getLogger(__name__)

EXECUTE_MESSAGES = ("set_raffle", "start_raffle", "buy_ticket", "select_winner", "claim_prize")
QUERY_MESSAGES = ("raffle_info", "with_permit")
PERMIT_QUERIES = ("get_secret", "get_tickets")


class RaffleContract:
    def __init__(
        self,
        store: KeyValueStore,
        address: Identity,
        denom: str = PAYOUT_DENOM,
    ) -> None:
        self._store = store
        self.address = address
        self.denom = denom

    def _manager(self, txn: Transaction, bank: LedgerBank) -> RaffleManager:
        storage = RaffleStorage(txn)
        access = AccessControl(
            admin=storage.load_admin(),
            contract_address=self.address,
            revocations=PermitRevocations(txn),
        )
        return RaffleManager(storage, access, PrizeVault(bank, self.address, self.denom))

    # --- entry points --------------------------------------------------------

    def instantiate(self, info: MessageInfo, admin: Optional[Identity] = None) -> Response:
        with Transaction(self._store) as txn:
            return instantiate(RaffleStorage(txn), info.sender, admin)

    def execute(self, env: BlockEnv, info: MessageInfo, msg: Mapping[str, Any]) -> Response:
        name, body = _unpack(msg, EXECUTE_MESSAGES)
        try:
            with Transaction(self._store) as txn:
                bank = LedgerBank(txn)
                for coin in info.funds:
                    bank.transfer(info.sender, self.address, coin)

                manager = self._manager(txn, bank)
                response = self._dispatch(manager, name, body, env, info)

                for transfer in response.transfers:
                    bank.transfer(self.address, transfer.recipient, transfer.coin)
        except DomainError as e:
            log.info("%s from %s rejected: %s", name, info.sender, e)
            raise
        return response

    def query(self, msg: Mapping[str, Any]) -> Dict[str, Any]:
        name, body = _unpack(msg, QUERY_MESSAGES)
        txn = Transaction(self._store)
        try:
            manager = self._manager(txn, LedgerBank(txn))
            if name == "raffle_info":
                return {"raffle_info": manager.raffle_info().to_dict()}

            permit = body.get("permit")
            query_name, _ = _unpack(body.get("query"), PERMIT_QUERIES)
            if query_name == "get_secret":
                return {"get_secret": {"secret": manager.get_secret(permit)}}
            return {"get_tickets": {"tickets": str(manager.get_tickets(permit))}}
        finally:
            txn.discard()

    # --- host-side helpers ---------------------------------------------------

    def revoke_permit(self, info: MessageInfo, permit_name: str) -> None:
        with Transaction(self._store) as txn:
            PermitRevocations(txn).revoke(info.sender, permit_name)

    def mint(self, recipient: Identity, amount: int) -> None:
        """Credit simulated funds; only meaningful for a locally hosted ledger."""
        with Transaction(self._store) as txn:
            LedgerBank(txn).mint(recipient, Coin(self.denom, amount))

    def balance(self, address: Identity) -> int:
        txn = Transaction(self._store)
        try:
            return LedgerBank(txn).balance(address, self.denom)
        finally:
            txn.discard()

    # --- dispatch ------------------------------------------------------------

    def _dispatch(
        self,
        manager: RaffleManager,
        name: str,
        body: Mapping[str, Any],
        env: BlockEnv,
        info: MessageInfo,
    ) -> Response:
        handlers: Dict[str, Callable[[], Response]] = {
            "set_raffle": lambda: manager.set_raffle(
                info.sender,
                secret=_parse_str(body, "secret"),
                ticket_price=_parse_uint(body, "ticket_price"),
                end_time=_parse_uint(body, "end_time"),
            ),
            "start_raffle": lambda: manager.start_raffle(info.sender),
            "buy_ticket": lambda: manager.buy_ticket(env, info.sender, info.funds),
            "select_winner": lambda: manager.select_winner(env),
            "claim_prize": lambda: manager.claim_prize(info.sender),
        }
        return handlers[name]()


def _unpack(msg: Any, allowed: Tuple[str, ...]) -> Tuple[str, Mapping[str, Any]]:
    if not isinstance(msg, Mapping) or len(msg) != 1:
        raise InvalidMessageError("expected an object with exactly one message key")
    ((name, body),) = msg.items()
    if name not in allowed:
        raise InvalidMessageError(f"unknown message '{name}'")
    if body is None:
        body = {}
    if not isinstance(body, Mapping):
        raise InvalidMessageError(f"'{name}' body must be an object")
    return name, body


def _parse_str(body: Mapping[str, Any], field: str) -> str:
    value = body.get(field)
    if not isinstance(value, str):
        raise InvalidMessageError(f"'{field}' must be a string")
    return value


def _parse_uint(body: Mapping[str, Any], field: str) -> int:
    # Wide integers travel as decimal strings.
    value = body.get(field)
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str) and value.isdigit() and value.isascii():
        number = int(value)
    else:
        raise InvalidMessageError(f"'{field}' must be an unsigned integer")
    if number < 0:
        raise InvalidMessageError(f"'{field}' must be an unsigned integer")
    return number
