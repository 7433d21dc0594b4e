from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from nacl.signing import SigningKey

from .access import sign_permit
from .config import Settings
from .contract import RaffleContract
from .errors import DomainError, StoreError
from .host import BlockEnv, Coin, FixedRandomness, MessageInfo, RandomSource, SystemRandomness
from .identity import Identity
from .rpc import BlockFeedRandomness, BlockhashRandomness, RpcClient
from .stores import JsonFileStore
from .verify import build_audit, verify_audit

log = logging.getLogger("raffle")


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _open(args: argparse.Namespace) -> Tuple[Settings, RaffleContract]:
    settings = Settings.from_env(
        state_file_override=args.state_file,
        rpc_url_override=args.rpc_url,
    )
    contract = RaffleContract(
        JsonFileStore(settings.state_file),
        settings.contract_address,
        settings.denom,
    )
    return settings, contract


def _now(args: argparse.Namespace) -> int:
    if args.now is not None:
        return args.now
    return int(time.time())


def _info(sender: str, amount: int = 0, denom: str = "") -> MessageInfo:
    funds = (Coin(denom, amount),) if amount else ()
    return MessageInfo(sender=Identity.from_string(sender), funds=funds)


def _load_key(path: str) -> SigningKey:
    with open(path, "r", encoding="utf-8") as f:
        return SigningKey(bytes.fromhex(f.read().strip()))


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _print_attributes(attributes: Dict[str, str]) -> None:
    for key, value in attributes.items():
        print(f"{key:<14}: {value}")


def cmd_keygen(args: argparse.Namespace) -> int:
    key = SigningKey.generate()
    with open(args.out, "w", encoding="utf-8") as f:
        f.write(bytes(key).hex() + "\n")
    print(f"Address : {Identity(bytes(key.verify_key)).address}")
    print(f"Key file: {args.out}")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    settings, contract = _open(args)
    admin = Identity.from_string(args.admin) if args.admin else None
    response = contract.instantiate(_info(args.sender), admin=admin)
    _print_attributes(response.attributes)
    print(f"Contract address: {settings.contract_address}")
    print(f"State file      : {settings.state_file}")
    return 0


def cmd_mint(args: argparse.Namespace) -> int:
    settings, contract = _open(args)
    recipient = Identity.from_string(args.to)
    contract.mint(recipient, args.amount)
    print(f"{recipient}: {contract.balance(recipient)} {settings.denom}")
    return 0


def cmd_balance(args: argparse.Namespace) -> int:
    settings, contract = _open(args)
    address = Identity.from_string(args.address) if args.address else settings.contract_address
    print(f"{address}: {contract.balance(address)} {settings.denom}")
    return 0


def cmd_set_raffle(args: argparse.Namespace) -> int:
    _, contract = _open(args)
    now = _now(args)
    end_time = args.end_time if args.end_time is not None else now + args.duration
    msg = {
        "set_raffle": {
            "secret": args.secret,
            "ticket_price": str(args.price),
            "end_time": str(end_time),
        }
    }
    response = contract.execute(BlockEnv(time=now), _info(args.sender), msg)
    _print_attributes(response.attributes)
    print(f"End time      : {datetime.fromtimestamp(end_time, timezone.utc).isoformat()}")
    return 0


def cmd_start(args: argparse.Namespace) -> int:
    _, contract = _open(args)
    response = contract.execute(BlockEnv(time=_now(args)), _info(args.sender), {"start_raffle": {}})
    _print_attributes(response.attributes)
    return 0


def cmd_buy(args: argparse.Namespace) -> int:
    settings, contract = _open(args)
    info = _info(args.sender, args.amount, settings.denom)
    response = contract.execute(BlockEnv(time=_now(args)), info, {"buy_ticket": {}})
    _print_attributes(response.attributes)
    return 0


def cmd_select_winner(args: argparse.Namespace) -> int:
    settings, contract = _open(args)

    rpc = None
    randomness: RandomSource
    if args.seed_hex:
        randomness = FixedRandomness(bytes.fromhex(args.seed_hex))
        seed_source = "cli:seed-hex"
    elif args.block_feed_file:
        randomness = BlockFeedRandomness(args.block_feed_file, args.slot)
        seed_source = f"file:{args.block_feed_file}"
    elif args.slot is not None:
        rpc = RpcClient(settings.require_rpc_url(), timeout_s=args.timeout)
        randomness = BlockhashRandomness(rpc, args.slot)
        seed_source = "rpc:getBlock"
    else:
        randomness = SystemRandomness()
        seed_source = "os:urandom"

    try:
        if args.now is None and rpc is not None:
            now = rpc.get_block_time(args.slot)
        else:
            now = _now(args)
        env = BlockEnv(time=now, randomness=randomness)
        response = contract.execute(env, _info(args.sender), {"select_winner": {}})
    finally:
        if rpc is not None:
            rpc.close()

    log.info("Seed source      : %s", seed_source)
    print("========================================")
    print("RAFFLE DRAW")
    print("========================================")
    _print_attributes(response.attributes)

    if response.data is not None:
        audit = build_audit(response.data, settings.contract_address.address, seed_source)
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(audit, f, indent=2)
        print("----------------------------------------")
        print(f"Wrote audit   : {args.out}")
    return 0


def cmd_claim(args: argparse.Namespace) -> int:
    settings, contract = _open(args)
    response = contract.execute(BlockEnv(time=_now(args)), _info(args.sender), {"claim_prize": {}})
    _print_attributes(response.attributes)
    for transfer in response.transfers:
        print(f"Paid          : {transfer.coin.amount} {transfer.coin.denom} -> {transfer.recipient}")
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    _, contract = _open(args)
    answer = contract.query({"raffle_info": {}})
    print(json.dumps(answer, indent=2))
    return 0


def cmd_sign_permit(args: argparse.Namespace) -> int:
    settings, _ = _open(args)
    permit = sign_permit(
        _load_key(args.key_file),
        permit_name=args.name,
        allowed_tokens=[settings.contract_address.address],
    )
    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(permit.to_dict(), f, indent=2)
    print(f"Permit '{args.name}' for {permit.pub_key} written to {args.out}")
    return 0


def cmd_revoke_permit(args: argparse.Namespace) -> int:
    _, contract = _open(args)
    owner = Identity(bytes(_load_key(args.key_file).verify_key))
    contract.revoke_permit(MessageInfo(sender=owner), args.name)
    print(f"Permit '{args.name}' revoked for {owner}")
    return 0


def cmd_secret(args: argparse.Namespace) -> int:
    _, contract = _open(args)
    query = {"with_permit": {"permit": _load_json(args.permit), "query": {"get_secret": {}}}}
    answer = contract.query(query)
    print(answer["get_secret"]["secret"])
    return 0


def cmd_tickets(args: argparse.Namespace) -> int:
    _, contract = _open(args)
    query = {"with_permit": {"permit": _load_json(args.permit), "query": {"get_tickets": {}}}}
    answer = contract.query(query)
    print(answer["get_tickets"]["tickets"])
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    result = verify_audit(args.audit)
    print("AUDIT VERIFIED")
    print(f"Winner        : {result['winner']}")
    print(f"Winning index : {result['winning_index']}")
    print(f"Total tickets : {result['total_tickets']}")
    print(f"Seed          : {result['seed_hex']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ledger-raffle",
        description="Single raffle on an append-only ledger, run against a local state file.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--state-file", default=None, help="Override state file (else RAFFLE_STATE_FILE).")
    p.add_argument("--rpc-url", default=None, help="Override RPC URL (else use env).")
    p.add_argument("--timeout", type=float, default=60.0, help="RPC timeout seconds.")

    sub = p.add_subparsers(dest="cmd", required=True)

    def with_now(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
        parser.add_argument("--now", type=int, default=None, help="Block time override (unix seconds).")
        return parser

    k = sub.add_parser("keygen", help="Create an ed25519 key file for a participant.")
    k.add_argument("--out", required=True, help="Key file path (hex seed).")
    k.set_defaults(func=cmd_keygen)

    i = sub.add_parser("init", help="Instantiate the raffle.")
    i.add_argument("--sender", required=True, help="Creator address.")
    i.add_argument("--admin", default=None, help="Admin address (defaults to sender).")
    i.set_defaults(func=cmd_init)

    m = sub.add_parser("mint", help="Credit simulated funds to an address.")
    m.add_argument("--to", required=True)
    m.add_argument("--amount", required=True, type=int)
    m.set_defaults(func=cmd_mint)

    b = sub.add_parser("balance", help="Show a balance (contract custody by default).")
    b.add_argument("--address", default=None)
    b.set_defaults(func=cmd_balance)

    s = with_now(sub.add_parser("set-raffle", help="Configure the raffle (admin)."))
    s.add_argument("--sender", required=True)
    s.add_argument("--secret", required=True, help="Phrase revealed only to the winner.")
    s.add_argument("--price", required=True, type=int, help="Ticket price in smallest units.")
    end = s.add_mutually_exclusive_group(required=True)
    end.add_argument("--end-time", type=int, help="End time (unix seconds).")
    end.add_argument("--duration", type=int, help="Seconds from now until the raffle ends.")
    s.set_defaults(func=cmd_set_raffle)

    st = with_now(sub.add_parser("start", help="Open ticket sales (admin)."))
    st.add_argument("--sender", required=True)
    st.set_defaults(func=cmd_start)

    by = with_now(sub.add_parser("buy", help="Buy tickets by paying a multiple of the price."))
    by.add_argument("--sender", required=True)
    by.add_argument("--amount", required=True, type=int)
    by.set_defaults(func=cmd_buy)

    d = with_now(sub.add_parser("select-winner", help="Draw the winner after the end time."))
    d.add_argument("--sender", required=True)
    seed = d.add_mutually_exclusive_group()
    seed.add_argument("--seed-hex", default=None, help="Explicit random value (hex).")
    seed.add_argument("--block-feed-file", default=None, help="Blockhash feed file for the seed.")
    d.add_argument("--slot", type=int, default=None, help="Finalized slot whose blockhash seeds the draw.")
    d.add_argument("--out", default="audit.json", help="Audit output JSON path.")
    d.set_defaults(func=cmd_select_winner)

    c = with_now(sub.add_parser("claim", help="Winner withdraws the whole pot."))
    c.add_argument("--sender", required=True)
    c.set_defaults(func=cmd_claim)

    inf = sub.add_parser("info", help="Public raffle state.")
    inf.set_defaults(func=cmd_info)

    sp = sub.add_parser("sign-permit", help="Sign a query permit for this raffle.")
    sp.add_argument("--key-file", required=True)
    sp.add_argument("--name", required=True, help="Permit name (unit of revocation).")
    sp.add_argument("--out", default="permit.json")
    sp.set_defaults(func=cmd_sign_permit)

    rp = sub.add_parser("revoke-permit", help="Revoke a permit name for the key's account.")
    rp.add_argument("--key-file", required=True)
    rp.add_argument("--name", required=True)
    rp.set_defaults(func=cmd_revoke_permit)

    se = sub.add_parser("secret", help="Winner-only: reveal the secret phrase.")
    se.add_argument("--permit", required=True, help="Path to permit JSON.")
    se.set_defaults(func=cmd_secret)

    t = sub.add_parser("tickets", help="Ticket count of the permit's account.")
    t.add_argument("--permit", required=True, help="Path to permit JSON.")
    t.set_defaults(func=cmd_tickets)

    v = sub.add_parser("verify", help="Verify an existing draw audit deterministically.")
    v.add_argument("--audit", required=True, help="Path to audit.json.")
    v.set_defaults(func=cmd_verify)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    try:
        code = args.func(args)
    except (DomainError, StoreError, RuntimeError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        code = 1
    raise SystemExit(code)
