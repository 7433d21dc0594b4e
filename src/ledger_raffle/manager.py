"""
Raffle lifecycle state machine.

High-level flow:
1. Admin configures the raffle with `set_raffle` (secret phrase, ticket price, end time).
2. Admin starts the raffle with `start_raffle`, which opens ticket sales.
3. Users buy tickets with `buy_ticket` by sending the payout currency (many buys allowed).
4. After `end_time`, anyone calls `select_winner`:
     - tickets sold: a winner is drawn, weighted by ticket count;
     - no tickets sold: the raffle finishes without a winner.
5. The winner calls `claim_prize` to receive the whole pot and may read the
   secret phrase with `get_secret`, authenticated by a permit.

The manager only stages writes through RaffleStorage; the caller decides
whether the call's transaction commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .access import AccessControl, Permit
from .draw import draw
from .errors import (
    AdminCannotBuyError,
    AlreadyClaimedError,
    AlreadyInstantiatedError,
    AlreadySelectedError,
    AlreadyStartedError,
    CounterOverflowError,
    NoFundsSentError,
    NotAMultipleOfPriceError,
    NotConfiguredError,
    NotStartedError,
    NotWinnerError,
    NotYetEndedError,
    NoWinnerError,
    RaffleEndedError,
    RandomnessUnavailableError,
    UnauthorizedError,
    WinnerNotSelectedError,
)
from .host import BlockEnv, Coin, Response
from .identity import Identity
from .ledger import TicketLedger, tickets_for_payment
from .project_constants import U128_MAX
from .state import RaffleConfig, RaffleStorage
from .vault import PrizeVault

log = logging.getLogger(__name__)

Credential = Union[Permit, Mapping[str, Any]]


@dataclass(frozen=True)
class RaffleInfo:
    started: bool
    ticket_price: Optional[int]
    end_time: Optional[int]
    total_tickets: int
    winner_selected: bool
    prize_claimed: bool
    winner: Optional[Identity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started": self.started,
            "ticket_price": None if self.ticket_price is None else str(self.ticket_price),
            "end_time": None if self.end_time is None else str(self.end_time),
            "total_tickets": str(self.total_tickets),
            "winner_selected": self.winner_selected,
            "prize_claimed": self.prize_claimed,
            "winner": None if self.winner is None else self.winner.address,
        }


def instantiate(storage: RaffleStorage, sender: Identity, admin: Optional[Identity] = None) -> Response:
    """Record the admin (defaults to the sender) and initialise every milestone to false."""
    if storage.is_instantiated():
        raise AlreadyInstantiatedError()
    admin = admin or sender
    storage.save_admin(admin)
    storage.init_flags()
    storage.save_ledger(TicketLedger())
    storage.save_winner(None)
    log.info("Admin set to: %s", admin)
    return Response().add_attribute("action", "instantiate").add_attribute("admin", admin)


class RaffleManager:
    def __init__(self, storage: RaffleStorage, access: AccessControl, vault: PrizeVault) -> None:
        self._storage = storage
        self._access = access
        self._vault = vault

    @property
    def denom(self) -> str:
        return self._vault.denom

    # --- admin transitions ---------------------------------------------------

    def set_raffle(self, sender: Identity, secret: str, ticket_price: int, end_time: int) -> Response:
        if not self._access.is_admin(sender):
            raise UnauthorizedError("set raffle")
        flags = self._storage.load_flags()
        if flags.started:
            raise AlreadyStartedError()
        if flags.winner_selected:
            raise AlreadySelectedError()

        config = RaffleConfig(end_time=end_time, ticket_price=ticket_price, secret=secret)
        self._storage.save_config(config)
        log.info("Raffle set with end_time: %s, ticket_price: %s", end_time, ticket_price)
        return Response().add_attribute("action", "set_raffle")

    def start_raffle(self, sender: Identity) -> Response:
        if not self._access.is_admin(sender):
            raise UnauthorizedError("start raffle")
        flags = self._storage.load_flags()
        if flags.started:
            raise AlreadyStartedError()
        # A raffle resolved without ever starting stays resolved.
        if flags.winner_selected:
            raise AlreadySelectedError()
        if self._storage.may_load_config() is None:
            raise NotConfiguredError()

        self._storage.mark_started()
        log.info("Raffle started")
        return Response().add_attribute("action", "start_raffle")

    # --- participant transitions ---------------------------------------------

    def buy_ticket(self, env: BlockEnv, sender: Identity, funds: Sequence[Coin]) -> Response:
        if not self._storage.load_flags().started:
            raise NotStartedError()
        config = self._storage.may_load_config()
        if config is None:
            raise NotConfiguredError()
        if env.time >= config.end_time:
            raise RaffleEndedError()
        if self._access.is_admin(sender):
            raise AdminCannotBuyError()

        amount = sum(coin.amount for coin in funds if coin.denom == self.denom)
        if amount == 0:
            raise NoFundsSentError(self.denom)
        if amount > U128_MAX:
            raise CounterOverflowError("Payment amount")
        if amount % config.ticket_price != 0:
            raise NotAMultipleOfPriceError()

        tickets_bought = tickets_for_payment(amount, config.ticket_price)
        ledger = self._storage.load_ledger()
        new_count = ledger.add(sender, tickets_bought)
        self._storage.save_ledger(ledger)

        log.info("User %s bought %d tickets", sender, tickets_bought)
        return (
            Response()
            .add_attribute("action", "buy_ticket")
            .add_attribute("tickets_bought", tickets_bought)
            .add_attribute("tickets", new_count)
        )

    def select_winner(self, env: BlockEnv) -> Response:
        config = self._storage.may_load_config()
        if config is None:
            raise NotConfiguredError()
        if env.time < config.end_time:
            raise NotYetEndedError()
        if self._storage.load_flags().winner_selected:
            raise AlreadySelectedError()

        ledger = self._storage.load_ledger()

        # Zero tickets is a defined outcome, not an error: finish without a
        # winner and never touch the randomness source.
        if ledger.total() == 0:
            self._storage.save_winner(None)
            self._storage.mark_winner_selected()
            log.info("Raffle ended with zero tickets - no winner selected")
            return (
                Response()
                .add_attribute("action", "select_winner")
                .add_attribute("result", "no_tickets")
            )

        try:
            seed = env.randomness.random_bytes()
        except (RuntimeError, OSError) as e:
            log.warning("Randomness source failed: %s", e)
            raise RandomnessUnavailableError() from e

        result = draw(ledger, seed)
        winner = result.winner.identity
        self._storage.save_winner(winner)
        self._storage.mark_winner_selected()

        log.info("Winner selected: %s", winner)
        response = (
            Response()
            .add_attribute("action", "select_winner")
            .add_attribute("result", "winner")
            .add_attribute("winner", winner)
            .add_attribute("winning_index", result.winning_index)
            .add_attribute("total_tickets", result.total_tickets)
        )
        response.data = result
        return response

    def claim_prize(self, sender: Identity) -> Response:
        flags = self._storage.load_flags()
        if not flags.winner_selected:
            raise WinnerNotSelectedError()
        if flags.prize_claimed:
            raise AlreadyClaimedError()
        winner = self._storage.load_winner()
        if winner is None:
            raise NoWinnerError()
        if sender != winner:
            raise NotWinnerError("claim prize")

        transfer = self._vault.payout(winner)
        self._storage.mark_prize_claimed()

        log.info("Prize of %d %s claimed by winner: %s", transfer.coin.amount, self.denom, sender)
        response = (
            Response()
            .add_attribute("action", "claim_prize")
            .add_attribute("amount", transfer.coin.amount)
        )
        response.transfers.append(transfer)
        return response

    # --- reads ---------------------------------------------------------------

    def raffle_info(self) -> RaffleInfo:
        flags = self._storage.load_flags()
        config = self._storage.may_load_config()
        ledger = self._storage.load_ledger()

        # A finished raffle with zero tickets has no winner; report None.
        winner = self._storage.load_winner() if flags.winner_selected else None
        return RaffleInfo(
            started=flags.started,
            ticket_price=config.ticket_price if config else None,
            end_time=config.end_time if config else None,
            total_tickets=ledger.total(),
            winner_selected=flags.winner_selected,
            prize_claimed=flags.prize_claimed,
            winner=winner,
        )

    def get_secret(self, credential: Credential) -> str:
        identity = self._access.resolve_authenticated_identity(credential)
        if not self._storage.load_flags().winner_selected:
            raise WinnerNotSelectedError()
        winner = self._storage.load_winner()
        if winner is None:
            raise NoWinnerError()
        if identity != winner:
            raise NotWinnerError("view secret")

        config = self._storage.may_load_config()
        if config is None:
            raise NotConfiguredError()
        return config.secret

    def get_tickets(self, credential: Credential) -> int:
        identity = self._access.resolve_authenticated_identity(credential)
        return self._storage.load_ledger().get(identity)
