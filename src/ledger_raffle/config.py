from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .host import contract_address_for
from .identity import Identity
from .project_constants import PAYOUT_DENOM


@dataclass(frozen=True)
class Settings:
    state_file: str
    contract_address: Identity
    denom: str
    rpc_url: Optional[str]

    @staticmethod
    def from_env(
        state_file_override: Optional[str] = None,
        rpc_url_override: Optional[str] = None,
    ) -> "Settings":
        load_dotenv()

        state_file = state_file_override or os.getenv("RAFFLE_STATE_FILE", "").strip() or "raffle_state.json"

        # Custody address: explicit, else derived from the state file name so
        # two local raffles never share one.
        env_address = os.getenv("RAFFLE_CONTRACT_ADDRESS", "").strip()
        if env_address:
            contract_address = Identity.from_string(env_address)
        else:
            contract_address = contract_address_for(os.path.basename(state_file))

        denom = os.getenv("RAFFLE_DENOM", "").strip() or PAYOUT_DENOM

        return Settings(
            state_file=state_file,
            contract_address=contract_address,
            denom=denom,
            rpc_url=rpc_url_override or _rpc_url_from_env(),
        )

    def require_rpc_url(self) -> str:
        if not self.rpc_url:
            raise RuntimeError(
                "Missing HELIUS_API_KEY (or RPC_URL). Put it in .env or export it."
            )
        return self.rpc_url


def _rpc_url_from_env() -> Optional[str]:
    env_rpc = os.getenv("RPC_URL", "").strip()
    if env_rpc:
        return env_rpc

    helius_key = os.getenv("HELIUS_API_KEY", "").strip()
    if helius_key:
        return f"https://mainnet.helius-rpc.com/?api-key={helius_key}"
    return None
