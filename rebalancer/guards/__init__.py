"""Trust boundaries and safety switches.

Each authorization predicate is a pure function of (authority, message).
No predicate reads another domain's state.
"""

from .authority import (
    callback_message_hash,
    is_allow_listed,
    is_owner_or_admin,
    is_relay,
    recover_callback_signer,
    same_identity,
    sign_callback,
    signature_authorizes,
)
from .breaker import CircuitBreaker
from .reentrancy import ReentrancyGuard

__all__ = [
    # Authority
    "callback_message_hash",
    "is_allow_listed",
    "is_owner_or_admin",
    "is_relay",
    "recover_callback_signer",
    "same_identity",
    "sign_callback",
    "signature_authorizes",
    # Switches
    "CircuitBreaker",
    "ReentrancyGuard",
]
