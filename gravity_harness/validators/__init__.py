"""
Validator roster for scenarios.

Provides:
  - KeyKind / ValidatorIdentity / ValidatorSet    (identity.py)
  - BridgeUser                                    (identity.py)
"""

from .identity import (
    BridgeUser,
    KeyKind,
    ValidatorIdentity,
    ValidatorSet,
    derive_address,
)

__all__ = [
    "BridgeUser",
    "KeyKind",
    "ValidatorIdentity",
    "ValidatorSet",
    "derive_address",
]
