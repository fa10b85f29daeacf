"""
Tokenlock - Token Timelock Vault

Lock fungible tokens for a delay and withdraw them once the unlock time
has been reached, on a local chain with controllable block time.

Main Components:
- Contracts: ERC20-style token ledger and the timelock vault
- Clock: wall-clock and simulated block time
- Chain: in-process chain with JSON state persistence
- CLI: click/rich command surface over a persisted chain
"""

__version__ = "0.1.0"
__author__ = "Tokenlock Development Team"

__all__ = []
