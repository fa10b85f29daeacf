"""
Tokenlock contracts.

- ERC20: Fungible token ledger with pull-based allowances
- Timelock: Per-depositor time-gated token custody
"""

from .erc20 import UINT256_MAX, ERC20Factory, ERC20Token, TokenEvent
from .timelock import Lock, LockState, TimelockVault, VaultEvent

__all__ = [
    # Token
    "ERC20Token",
    "ERC20Factory",
    "TokenEvent",
    "UINT256_MAX",
    # Vault
    "TimelockVault",
    "Lock",
    "LockState",
    "VaultEvent",
]
