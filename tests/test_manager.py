"""Tests for the raffle lifecycle: transitions, failures and atomicity.

Run with: pytest tests/test_manager.py -v
"""

import random

import pytest

from conftest import END_TIME, PRICE, SECRET, STARTING_BALANCE, T0, SpyRandomness, seed_for
from ledger_raffle.access import sign_permit
from ledger_raffle.contract import RaffleContract
from ledger_raffle.errors import (
    AdminCannotBuyError,
    AlreadyClaimedError,
    AlreadyInstantiatedError,
    AlreadySelectedError,
    AlreadyStartedError,
    CounterOverflowError,
    DomainError,
    ErrorCode,
    InsufficientFundsError,
    InvalidConfigError,
    NoFundsSentError,
    NotAMultipleOfPriceError,
    NotConfiguredError,
    NotStartedError,
    NotWinnerError,
    NotYetEndedError,
    NoWinnerError,
    NothingToClaimError,
    RaffleEndedError,
    RandomnessUnavailableError,
    UnauthorizedError,
    WinnerNotSelectedError,
)
from ledger_raffle.host import BlockEnv, MessageInfo
from ledger_raffle.project_constants import U64_MAX

SET_RAFFLE = {"set_raffle": {"secret": SECRET, "ticket_price": str(PRICE), "end_time": str(END_TIME)}}


def info(contract):
    return contract.query({"raffle_info": {}})["raffle_info"]


def ledger_records(store):
    snapshot = store.snapshot()
    return snapshot["tickets"], snapshot["total_tickets"]


class TestInstantiate:
    def test_flags_start_false(self, contract):
        """A fresh raffle reports every milestone as false and no parameters."""
        assert info(contract) == {
            "started": False,
            "ticket_price": None,
            "end_time": None,
            "total_tickets": "0",
            "winner_selected": False,
            "prize_claimed": False,
            "winner": None,
        }

    def test_second_instantiate_fails(self, contract, alice):
        with pytest.raises(AlreadyInstantiatedError):
            contract.instantiate(MessageInfo(sender=alice))

    def test_custom_admin(self, store, contract_address, alice, bob):
        """An explicit admin replaces the creator as the privileged identity."""
        c = RaffleContract(store, contract_address)
        c.instantiate(MessageInfo(sender=alice), admin=bob)
        with pytest.raises(UnauthorizedError):
            c.execute(BlockEnv(time=T0), MessageInfo(sender=alice), SET_RAFFLE)
        c.execute(BlockEnv(time=T0), MessageInfo(sender=bob), SET_RAFFLE)


class TestSetRaffle:
    def test_admin_configures(self, configured):
        """Parameters are visible before the raffle starts."""
        state = info(configured)
        assert state["ticket_price"] == str(PRICE)
        assert state["end_time"] == str(END_TIME)
        assert state["started"] is False

    def test_non_admin_rejected(self, contract, execute, alice):
        with pytest.raises(UnauthorizedError) as excinfo:
            execute(alice, SET_RAFFLE)
        assert excinfo.value.code is ErrorCode.UNAUTHORIZED

    def test_reconfigure_before_start(self, configured, execute, admin):
        execute(admin, {"set_raffle": {"secret": "x", "ticket_price": "7", "end_time": str(END_TIME)}})
        assert info(configured)["ticket_price"] == "7"

    def test_rejected_after_start(self, started, execute, admin):
        with pytest.raises(AlreadyStartedError):
            execute(admin, SET_RAFFLE)

    def test_zero_price_rejected(self, contract, execute, admin):
        with pytest.raises(InvalidConfigError):
            execute(admin, {"set_raffle": {"secret": SECRET, "ticket_price": "0", "end_time": str(END_TIME)}})
        assert info(contract)["ticket_price"] is None

    def test_end_time_beyond_u64_rejected(self, contract, execute, admin):
        with pytest.raises(InvalidConfigError):
            execute(admin, {"set_raffle": {"secret": SECRET, "ticket_price": "1", "end_time": str(2**64)}})


class TestStartRaffle:
    def test_requires_configuration(self, contract, execute, admin):
        with pytest.raises(NotConfiguredError):
            execute(admin, {"start_raffle": {}})

    def test_non_admin_rejected(self, configured, execute, alice):
        with pytest.raises(UnauthorizedError):
            execute(alice, {"start_raffle": {}})

    def test_starts_once(self, started, execute, admin):
        assert info(started)["started"] is True
        with pytest.raises(AlreadyStartedError):
            execute(admin, {"start_raffle": {}})


class TestBuyTicket:
    def test_before_start_fails(self, configured, execute, alice):
        with pytest.raises(NotStartedError):
            execute(alice, {"buy_ticket": {}}, amount=PRICE)

    def test_after_end_fails(self, started, execute, alice):
        with pytest.raises(RaffleEndedError):
            execute(alice, {"buy_ticket": {}}, now=END_TIME, amount=PRICE)

    def test_admin_cannot_buy(self, started, execute, admin):
        with pytest.raises(AdminCannotBuyError):
            execute(admin, {"buy_ticket": {}}, amount=PRICE)
        with pytest.raises(AdminCannotBuyError):
            execute(admin, {"buy_ticket": {}})

    def test_no_funds(self, started, execute, alice):
        with pytest.raises(NoFundsSentError):
            execute(alice, {"buy_ticket": {}})

    def test_not_a_multiple(self, started, store, execute, alice):
        before = store.snapshot()
        with pytest.raises(NotAMultipleOfPriceError):
            execute(alice, {"buy_ticket": {}}, amount=PRICE + 1)
        assert store.snapshot() == before

    def test_counts_accumulate(self, started, execute, contract, alice, contract_address):
        execute(alice, {"buy_ticket": {}}, amount=3 * PRICE)
        response = execute(alice, {"buy_ticket": {}}, amount=2 * PRICE)
        assert response.attributes["tickets"] == "5"
        assert info(contract)["total_tickets"] == "5"
        assert contract.balance(alice) == STARTING_BALANCE - 5 * PRICE
        assert contract.balance(contract_address) == 5 * PRICE

    def test_insufficient_balance_rejected(self, started, store, execute, alice):
        before = store.snapshot()
        with pytest.raises(InsufficientFundsError):
            execute(alice, {"buy_ticket": {}}, amount=STARTING_BALANCE + PRICE)
        assert store.snapshot() == before

    def test_total_equals_sum_of_entries(self, started, store, execute, alice, bob):
        """After every purchase the stored total equals the sum of ledger entries."""
        rng = random.Random(7)
        for _ in range(20):
            buyer = rng.choice([alice, bob])
            execute(buyer, {"buy_ticket": {}}, amount=rng.randint(1, 3) * PRICE)
            entries, total = ledger_records(store)
            assert total == sum(count for _, count in entries)
            assert len(entries) == len({address for address, _ in entries})


class TestOverflow:
    @pytest.fixture
    def penny_raffle(self, contract, execute, admin, alice):
        execute(admin, {"set_raffle": {"secret": SECRET, "ticket_price": "1", "end_time": str(END_TIME)}})
        execute(admin, {"start_raffle": {}})
        contract.mint(alice, 2**66)
        return contract

    def test_single_purchase_beyond_u64(self, penny_raffle, store, execute, alice):
        before = store.snapshot()
        with pytest.raises(CounterOverflowError) as excinfo:
            execute(alice, {"buy_ticket": {}}, amount=U64_MAX + 1)
        assert excinfo.value.code is ErrorCode.OVERFLOW
        assert store.snapshot() == before

    def test_counter_overflow_leaves_no_partial_update(self, penny_raffle, store, execute, alice):
        execute(alice, {"buy_ticket": {}}, amount=U64_MAX)
        before = store.snapshot()
        with pytest.raises(CounterOverflowError):
            execute(alice, {"buy_ticket": {}}, amount=1)
        assert store.snapshot() == before
        assert info(penny_raffle)["total_tickets"] == str(U64_MAX)


class TestSelectWinner:
    def test_before_end_fails(self, started, execute, alice):
        with pytest.raises(NotYetEndedError):
            execute(alice, {"select_winner": {}}, now=END_TIME - 1)

    def test_requires_configuration(self, contract, execute, alice):
        with pytest.raises(NotConfiguredError):
            execute(alice, {"select_winner": {}}, now=END_TIME)

    def test_zero_tickets_no_winner_without_randomness(self, started, execute, alice):
        spy = SpyRandomness(seed_for(5))
        response = execute(alice, {"select_winner": {}}, now=END_TIME, randomness=spy)
        assert response.attributes["result"] == "no_tickets"
        assert spy.calls == 0
        state = info(started)
        assert state["winner_selected"] is True
        assert state["winner"] is None

    def test_randomness_unavailable(self, started, store, execute, alice):
        execute(alice, {"buy_ticket": {}}, amount=PRICE)
        before = store.snapshot()
        with pytest.raises(RandomnessUnavailableError) as excinfo:
            execute(alice, {"select_winner": {}}, now=END_TIME, randomness=SpyRandomness(None))
        assert excinfo.value.code is ErrorCode.RESOURCE_UNAVAILABLE
        assert store.snapshot() == before

    def test_short_random_value_is_unavailable(self, started, execute, alice):
        execute(alice, {"buy_ticket": {}}, amount=PRICE)
        with pytest.raises(RandomnessUnavailableError):
            execute(alice, {"select_winner": {}}, now=END_TIME, randomness=SpyRandomness(b"\x01\x02"))

    def test_selects_once(self, started, execute, alice):
        execute(alice, {"buy_ticket": {}}, amount=PRICE)
        execute(alice, {"select_winner": {}}, now=END_TIME)
        with pytest.raises(AlreadySelectedError):
            execute(alice, {"select_winner": {}}, now=END_TIME + 1)

    def test_resolved_unstarted_raffle_cannot_reopen(self, configured, store, execute, admin, alice):
        """A raffle finished without ever starting can be neither reconfigured nor started."""
        execute(alice, {"select_winner": {}}, now=END_TIME)
        before = store.snapshot()
        later = {"set_raffle": {"secret": SECRET, "ticket_price": str(PRICE), "end_time": str(END_TIME + 10_000)}}
        with pytest.raises(AlreadySelectedError):
            execute(admin, later, now=END_TIME)
        with pytest.raises(AlreadySelectedError):
            execute(admin, {"start_raffle": {}}, now=END_TIME)
        with pytest.raises(NotStartedError):
            execute(alice, {"buy_ticket": {}}, now=END_TIME, amount=5 * PRICE)
        assert store.snapshot() == before
        state = info(configured)
        assert state["started"] is False
        assert state["total_tickets"] == "0"


class TestClaimPrize:
    def test_before_selection(self, started, execute, alice):
        with pytest.raises(WinnerNotSelectedError):
            execute(alice, {"claim_prize": {}}, now=END_TIME)

    def test_no_winner(self, started, execute, alice):
        execute(alice, {"select_winner": {}}, now=END_TIME)
        with pytest.raises(NoWinnerError):
            execute(alice, {"claim_prize": {}}, now=END_TIME)

    def test_nothing_to_claim(self, started, store, contract, contract_address, execute, alice):
        execute(alice, {"buy_ticket": {}}, amount=PRICE)
        execute(alice, {"select_winner": {}}, now=END_TIME)
        # Drain custody outside the raffle so the winner finds an empty pot.
        store.save_many({f"bank/{contract_address.address}/lamports": "0"})
        with pytest.raises(NothingToClaimError):
            execute(alice, {"claim_prize": {}}, now=END_TIME)
        assert info(contract)["prize_claimed"] is False


class TestScenario:
    def test_full_lifecycle(self, started, execute, contract, contract_address, alice, bob, alice_key):
        """A buys 3, B buys 1; index 2 picks A; A claims once; B cannot."""
        execute(alice, {"buy_ticket": {}}, amount=300)
        assert info(contract)["total_tickets"] == "3"
        execute(bob, {"buy_ticket": {}}, amount=100)
        assert info(contract)["total_tickets"] == "4"

        response = execute(bob, {"select_winner": {}}, now=END_TIME, randomness=SpyRandomness(seed_for(2)))
        assert response.attributes["winning_index"] == "2"
        assert info(contract)["winner"] == alice.address

        response = execute(alice, {"claim_prize": {}}, now=END_TIME + 5)
        assert response.transfers[0].coin.amount == 400
        assert contract.balance(alice) == STARTING_BALANCE - 300 + 400
        assert contract.balance(contract_address) == 0
        assert info(contract)["prize_claimed"] is True

        with pytest.raises(AlreadyClaimedError):
            execute(alice, {"claim_prize": {}}, now=END_TIME + 6)
        with pytest.raises(AlreadyClaimedError):
            execute(bob, {"claim_prize": {}}, now=END_TIME + 6)

        permit = sign_permit(alice_key, "winner", [contract_address.address])
        answer = contract.query({"with_permit": {"permit": permit.to_dict(), "query": {"get_secret": {}}}})
        assert answer == {"get_secret": {"secret": SECRET}}

    def test_loser_cannot_claim(self, started, execute, alice, bob):
        execute(alice, {"buy_ticket": {}}, amount=300)
        execute(bob, {"buy_ticket": {}}, amount=100)
        execute(bob, {"select_winner": {}}, now=END_TIME, randomness=SpyRandomness(seed_for(2)))
        with pytest.raises(NotWinnerError):
            execute(bob, {"claim_prize": {}}, now=END_TIME)

    def test_index_past_first_holder_picks_second(self, started, execute, contract, alice, bob):
        execute(alice, {"buy_ticket": {}}, amount=300)
        execute(bob, {"buy_ticket": {}}, amount=100)
        execute(alice, {"select_winner": {}}, now=END_TIME, randomness=SpyRandomness(seed_for(7)))
        # 7 % 4 == 3, past A's running sum of 3
        assert info(contract)["winner"] == bob.address


class TestMonotonicFlags:
    def test_failed_calls_never_unset_flags(self, started, execute, contract, admin, alice):
        execute(alice, {"buy_ticket": {}}, amount=PRICE)
        execute(alice, {"select_winner": {}}, now=END_TIME)
        execute(alice, {"claim_prize": {}}, now=END_TIME)

        for sender, msg in [
            (admin, SET_RAFFLE),
            (admin, {"start_raffle": {}}),
            (alice, {"select_winner": {}}),
            (alice, {"claim_prize": {}}),
        ]:
            with pytest.raises(DomainError):
                execute(sender, msg, now=END_TIME + 10)

        state = info(contract)
        assert state["started"] and state["winner_selected"] and state["prize_claimed"]


class FailingRandomness(SpyRandomness):
    def random_bytes(self):
        raise RuntimeError("node unreachable")


class TestRandomnessFailure:
    def test_source_error_surfaces_as_unavailable(self, started, store, execute, alice):
        execute(alice, {"buy_ticket": {}}, amount=PRICE)
        before = store.snapshot()
        with pytest.raises(RandomnessUnavailableError):
            execute(alice, {"select_winner": {}}, now=END_TIME, randomness=FailingRandomness())
        assert store.snapshot() == before
