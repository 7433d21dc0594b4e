"""Tests for message dispatch.

Run with: pytest tests/test_contract.py -v
"""

import pytest

from conftest import END_TIME, SECRET, T0
from ledger_raffle.errors import InvalidMessageError, RecordNotFoundError
from ledger_raffle.contract import RaffleContract
from ledger_raffle.host import BlockEnv, MessageInfo
from ledger_raffle.stores import MemoryStore


class TestExecuteDispatch:
    @pytest.mark.parametrize(
        "msg",
        [
            {},
            {"buy_ticket": {}, "claim_prize": {}},
            {"withdraw": {}},
            {"buy_ticket": []},
            "buy_ticket",
        ],
    )
    def test_malformed_messages(self, contract, execute, alice, msg):
        with pytest.raises(InvalidMessageError):
            execute(alice, msg)

    @pytest.mark.parametrize("price", ["-1", "1.5", "abc", True, None, 3.0])
    def test_bad_integers(self, contract, execute, admin, price):
        with pytest.raises(InvalidMessageError):
            execute(admin, {"set_raffle": {"secret": SECRET, "ticket_price": price, "end_time": END_TIME}})

    def test_integers_as_numbers_or_strings(self, contract, execute, admin):
        execute(admin, {"set_raffle": {"secret": SECRET, "ticket_price": 5, "end_time": str(END_TIME)}})
        assert contract.query({"raffle_info": {}})["raffle_info"]["ticket_price"] == "5"

    def test_secret_must_be_string(self, contract, execute, admin):
        with pytest.raises(InvalidMessageError):
            execute(admin, {"set_raffle": {"secret": 42, "ticket_price": "5", "end_time": str(END_TIME)}})

    def test_null_body_is_empty(self, configured, execute, admin):
        execute(admin, {"start_raffle": None})
        assert configured.query({"raffle_info": {}})["raffle_info"]["started"] is True


class TestQueryDispatch:
    def test_unknown_query(self, contract):
        with pytest.raises(InvalidMessageError):
            contract.query({"get_secret": {}})

    def test_unknown_permit_query(self, contract):
        with pytest.raises(InvalidMessageError):
            contract.query({"with_permit": {"permit": {}, "query": {"get_balance": {}}}})

    def test_queries_never_write(self, started, store):
        before = store.snapshot()
        started.query({"raffle_info": {}})
        assert store.snapshot() == before


class TestUninstantiated:
    def test_calls_fail_as_not_found(self, contract_address, alice):
        contract = RaffleContract(MemoryStore(), contract_address)
        with pytest.raises(RecordNotFoundError):
            contract.execute(BlockEnv(time=T0), MessageInfo(sender=alice), {"start_raffle": {}})
        with pytest.raises(RecordNotFoundError):
            contract.query({"raffle_info": {}})
