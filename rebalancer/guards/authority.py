"""Authorization predicates for the three trust boundaries.

- manager ingress: caller must equal the fixed relay identity
- destination direct calls: caller must be allow-listed
- destination callbacks: signature must recover to an allow-listed signer

The callback message only binds (position_id, chain_id). It does not bind
the callback id or the action data.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 65


def same_identity(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    if not (Web3.is_address(a) and Web3.is_address(b)):
        return False
    return Web3.to_checksum_address(a) == Web3.to_checksum_address(b)


def is_relay(relay_identity: str, caller: Optional[str]) -> bool:
    return same_identity(relay_identity, caller)


def is_owner_or_admin(owner: str, admin: str, caller: Optional[str]) -> bool:
    return same_identity(owner, caller) or same_identity(admin, caller)


def is_allow_listed(allow_list: AbstractSet[str], caller: Optional[str]) -> bool:
    if not caller or not Web3.is_address(caller):
        return False
    return Web3.to_checksum_address(caller) in allow_list


def callback_message_hash(position_id: bytes, chain_id: int) -> bytes:
    return bytes(Web3.solidity_keccak(["bytes32", "uint256"], [position_id, chain_id]))


def sign_callback(private_key: str, position_id: bytes, chain_id: int) -> bytes:
    """Produce the signature a destination handler accepts for `position_id`."""
    message = encode_defunct(primitive=callback_message_hash(position_id, chain_id))
    signed = Account.sign_message(message, private_key=private_key)
    return bytes(signed.signature)


def recover_callback_signer(position_id: bytes, chain_id: int, signature: bytes) -> Optional[str]:
    """Recover the signer address, or None if the signature is unusable."""
    if len(signature) != SIGNATURE_LENGTH:
        return None
    message = encode_defunct(primitive=callback_message_hash(position_id, chain_id))
    try:
        return Account.recover_message(message, signature=signature)
    except Exception as exc:  # eth_keys raises several unrelated types
        logger.debug(f"Signature recovery failed: {exc}")
        return None


def signature_authorizes(
    allow_list: AbstractSet[str],
    position_id: bytes,
    chain_id: int,
    signature: bytes,
) -> bool:
    signer = recover_callback_signer(position_id, chain_id, signature)
    return signer is not None and signer in allow_list
