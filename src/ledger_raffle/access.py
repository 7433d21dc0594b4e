"""Admin checks and permit-based authentication for winner-only queries.

A permit is a signed statement by an account that it allows a named set of
contracts to treat queries carrying the permit as coming from that account.
Replay is bounded by per-account revocation of permit names.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .errors import CorruptRecordError, InvalidCredentialError, InvalidIdentityError
from .identity import Identity
from .project_constants import PERMIT_PERMISSION, REVOKED_PERMITS_PREFIX
from .stores import Transaction

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermitParams:
    permit_name: str
    allowed_tokens: Tuple[str, ...]
    permissions: Tuple[str, ...]

    def sign_bytes(self) -> bytes:
        doc = {
            "allowed_tokens": list(self.allowed_tokens),
            "permissions": list(self.permissions),
            "permit_name": self.permit_name,
        }
        return json.dumps(doc, sort_keys=True, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class Permit:
    params: PermitParams
    pub_key: str  # base58 identity
    signature: str  # base64 ed25519 signature over params.sign_bytes()

    @classmethod
    def from_dict(cls, data: Any) -> "Permit":
        try:
            params = data["params"]
            sig = data["signature"]
            permit = cls(
                params=PermitParams(
                    permit_name=params["permit_name"],
                    allowed_tokens=tuple(params["allowed_tokens"]),
                    permissions=tuple(params["permissions"]),
                ),
                pub_key=sig["pub_key"],
                signature=sig["signature"],
            )
        except (KeyError, TypeError) as e:
            raise InvalidCredentialError("malformed permit") from e

        fields: List[Any] = [permit.params.permit_name, permit.pub_key, permit.signature]
        fields += list(permit.params.allowed_tokens) + list(permit.params.permissions)
        if not all(isinstance(f, str) for f in fields):
            raise InvalidCredentialError("malformed permit")
        return permit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "params": {
                "permit_name": self.params.permit_name,
                "allowed_tokens": list(self.params.allowed_tokens),
                "permissions": list(self.params.permissions),
            },
            "signature": {
                "pub_key": self.pub_key,
                "signature": self.signature,
            },
        }


def sign_permit(
    signing_key: SigningKey,
    permit_name: str,
    allowed_tokens: Sequence[str],
    permissions: Sequence[str] = (PERMIT_PERMISSION,),
) -> Permit:
    params = PermitParams(
        permit_name=permit_name,
        allowed_tokens=tuple(allowed_tokens),
        permissions=tuple(permissions),
    )
    signed = signing_key.sign(params.sign_bytes())
    return Permit(
        params=params,
        pub_key=Identity(bytes(signing_key.verify_key)).address,
        signature=base64.b64encode(signed.signature).decode("ascii"),
    )


class PermitRevocations:
    """Per-account list of revoked permit names, kept by the host."""

    def __init__(self, txn: Transaction) -> None:
        self._txn = txn

    @staticmethod
    def _key(identity: Identity) -> str:
        return f"{REVOKED_PERMITS_PREFIX}{identity.address}"

    def revoked_names(self, identity: Identity) -> List[str]:
        key = self._key(identity)
        names = self._txn.may_load(key) or []
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise CorruptRecordError(key, "revocation list is not a list of names")
        return names

    def is_revoked(self, identity: Identity, permit_name: str) -> bool:
        return permit_name in self.revoked_names(identity)

    def revoke(self, identity: Identity, permit_name: str) -> None:
        names = self.revoked_names(identity)
        if permit_name not in names:
            names.append(permit_name)
            self._txn.save(self._key(identity), names)
            log.info("Permit %r revoked for %s", permit_name, identity)


class AccessControl:
    def __init__(
        self,
        admin: Identity,
        contract_address: Identity,
        revocations: PermitRevocations,
    ) -> None:
        self.admin = admin
        self.contract_address = contract_address
        self._revocations = revocations

    def is_admin(self, identity: Identity) -> bool:
        return identity == self.admin

    def resolve_authenticated_identity(
        self, credential: Union[Permit, Mapping[str, Any]]
    ) -> Identity:
        permit = credential if isinstance(credential, Permit) else Permit.from_dict(credential)
        params = permit.params

        try:
            identity = Identity.from_string(permit.pub_key)
        except InvalidIdentityError as e:
            raise InvalidCredentialError("bad public key") from e

        if self.contract_address.address not in params.allowed_tokens:
            raise InvalidCredentialError("permit does not apply to this contract")
        if PERMIT_PERMISSION not in params.permissions:
            raise InvalidCredentialError(f"permit lacks '{PERMIT_PERMISSION}' permission")
        if self._revocations.is_revoked(identity, params.permit_name):
            raise InvalidCredentialError(f"permit '{params.permit_name}' was revoked")

        try:
            signature = base64.b64decode(permit.signature, validate=True)
            VerifyKey(identity.raw).verify(params.sign_bytes(), signature)
        except (BadSignatureError, binascii.Error, ValueError) as e:
            raise InvalidCredentialError("signature verification failed") from e

        return identity
