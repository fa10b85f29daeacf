"""
Token timelock vault.

A depositor approves the vault on the token, then calls ``lock`` to move
tokens into the vault's custody for ``delay_seconds``. ``withdraw`` returns
the full amount once the clock reaches the unlock time.

Per-depositor lifecycle::

    UNLOCKED --lock()--> LOCKED --(time passes)--> WITHDRAWABLE --withdraw()--> UNLOCKED

Each depositor holds at most one active lock. Every operation validates
before mutating, and the token movement and lock record change happen under
one lock so a call either fully commits or leaves no trace.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict

from ..addresses import ZERO_ADDRESS, derive_address, normalize_address
from ..exceptions import (
    DuplicateLockError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidDelayError,
    NoActiveLockError,
    TimeNotElapsedError,
    TokenTransferError,
)

if TYPE_CHECKING:
    from ..clock import Clock
    from .erc20 import ERC20Token

logger = logging.getLogger(__name__)


class LockState(Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"
    WITHDRAWABLE = "withdrawable"


@dataclass(frozen=True)
class Lock:
    """One deposit-and-wait commitment."""

    depositor: str
    amount: int
    unlock_time: int
    lock_time: int
    delay_seconds: int

    def is_withdrawable(self, current_time: int) -> bool:
        return current_time >= self.unlock_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depositor": self.depositor,
            "amount": self.amount,
            "unlock_time": self.unlock_time,
            "lock_time": self.lock_time,
            "delay_seconds": self.delay_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lock":
        return cls(
            depositor=data["depositor"],
            amount=int(data["amount"]),
            unlock_time=int(data["unlock_time"]),
            lock_time=int(data["lock_time"]),
            delay_seconds=int(data["delay_seconds"]),
        )


@dataclass
class VaultEvent:
    event_type: str  # "Locked" or "Withdrawn"
    depositor: str
    amount: int
    timestamp: int
    unlock_time: int = 0


@dataclass
class TimelockVault:
    """
    Custodies one token and gates withdrawals behind a per-depositor unlock time.

    Args:
        token: Token ledger whose tokens are locked
        clock: Time source; ``now()`` is the time an operation executes at
        address: Vault address on the token ledger (derived when omitted)
        max_lock_seconds: Upper bound on ``delay_seconds`` (0 = unlimited)
    """

    token: "ERC20Token"
    clock: "Clock"
    address: str = ""
    max_lock_seconds: int = 0

    locks: dict[str, Lock] = field(default_factory=dict)
    events: list[VaultEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address("timelock", self.token.address, id(self))
        self.address = normalize_address(self.address)
        self._mutex = threading.RLock()

    # ==================== View Functions ====================

    @property
    def total_locked(self) -> int:
        with self._mutex:
            return sum(lock.amount for lock in self.locks.values())

    def get_lock(self, depositor: str) -> Lock | None:
        """Active lock for ``depositor``, or None."""
        with self._mutex:
            return self.locks.get(normalize_address(depositor))

    def lock_state(self, depositor: str) -> LockState:
        lock = self.get_lock(depositor)
        if lock is None:
            return LockState.UNLOCKED
        if lock.is_withdrawable(self.clock.now()):
            return LockState.WITHDRAWABLE
        return LockState.LOCKED

    def time_remaining(self, depositor: str) -> int:
        """Seconds until ``depositor`` may withdraw; 0 when withdrawable or unlocked."""
        lock = self.get_lock(depositor)
        if lock is None:
            return 0
        return max(0, lock.unlock_time - self.clock.now())

    def active_locks(self) -> list[Lock]:
        with self._mutex:
            return sorted(self.locks.values(), key=lambda lock: lock.unlock_time)

    # ==================== State-Changing Functions ====================

    def lock(self, depositor: str, amount: int, delay_seconds: int) -> Lock:
        """
        Pull ``amount`` tokens from ``depositor`` and lock them for ``delay_seconds``.

        The depositor must have approved the vault for at least ``amount``.

        Returns:
            The new Lock

        Raises:
            InvalidAmountError: If amount is not a positive integer
            InvalidDelayError: If delay is negative or above ``max_lock_seconds``
            DuplicateLockError: If depositor already has an active lock
            InsufficientAllowanceError: If the vault's allowance is below amount
            InsufficientBalanceError: If depositor holds less than amount
            TokenTransferError: If the token ledger reports failure
        """
        depositor_norm = self._require_depositor(depositor)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmountError(
                "Cannot lock a non-positive amount", details={"amount": amount}
            )
        if not isinstance(delay_seconds, int) or isinstance(delay_seconds, bool) or delay_seconds < 0:
            raise InvalidDelayError(
                "Lock delay must be a non-negative integer number of seconds",
                details={"delay_seconds": delay_seconds},
            )
        if self.max_lock_seconds and delay_seconds > self.max_lock_seconds:
            raise InvalidDelayError(
                f"Lock delay {delay_seconds}s exceeds maximum {self.max_lock_seconds}s",
                details={"delay_seconds": delay_seconds, "max": self.max_lock_seconds},
            )

        with self._mutex:
            existing = self.locks.get(depositor_norm)
            if existing is not None:
                raise DuplicateLockError(
                    f"Depositor {depositor_norm} already has an active lock",
                    details=existing.to_dict(),
                )

            now = self.clock.now()
            # transfer_from validates allowance and balance before moving anything
            if not self.token.transfer_from(self.address, depositor_norm, self.address, amount):
                raise TokenTransferError("Token transferFrom returned failure")

            lock = Lock(
                depositor=depositor_norm,
                amount=amount,
                unlock_time=now + delay_seconds,
                lock_time=now,
                delay_seconds=delay_seconds,
            )
            self.locks[depositor_norm] = lock
            self.events.append(
                VaultEvent("Locked", depositor_norm, amount, now, lock.unlock_time)
            )

        logger.info(
            "Tokens locked: %d by %s until %d",
            amount,
            depositor_norm,
            lock.unlock_time,
            extra={
                "event": "vault.locked",
                "vault": self.address[:10],
                "depositor": depositor_norm[:10],
                "amount": amount,
                "unlock_time": lock.unlock_time,
            },
        )
        return lock

    def withdraw(self, depositor: str) -> int:
        """
        Return ``depositor``'s locked tokens once the unlock time is reached.

        Returns:
            The amount transferred back

        Raises:
            NoActiveLockError: If depositor has nothing locked
            TimeNotElapsedError: If the clock is still before the unlock time
        """
        depositor_norm = self._require_depositor(depositor)

        with self._mutex:
            lock = self.locks.get(depositor_norm)
            if lock is None:
                raise NoActiveLockError(
                    f"No active lock for {depositor_norm}",
                    details={"depositor": depositor_norm},
                )

            now = self.clock.now()
            if not lock.is_withdrawable(now):
                remaining = lock.unlock_time - now
                raise TimeNotElapsedError(
                    f"Tokens are still locked. Unlock available in {remaining} seconds.",
                    unlock_time=lock.unlock_time,
                    current_time=now,
                    details={"depositor": depositor_norm, "remaining_seconds": remaining},
                )

            if not self.token.transfer(self.address, depositor_norm, lock.amount):
                raise TokenTransferError("Token transfer returned failure")

            del self.locks[depositor_norm]
            self.events.append(VaultEvent("Withdrawn", depositor_norm, lock.amount, now))

        logger.info(
            "Tokens withdrawn: %d to %s",
            lock.amount,
            depositor_norm,
            extra={
                "event": "vault.withdrawn",
                "vault": self.address[:10],
                "depositor": depositor_norm[:10],
                "amount": lock.amount,
            },
        )
        return lock.amount

    # ==================== Helpers ====================

    def _require_depositor(self, depositor: str) -> str:
        depositor_norm = normalize_address(depositor)
        if depositor_norm == ZERO_ADDRESS:
            raise InvalidAddressError("Depositor cannot be the zero address")
        return depositor_norm

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        with self._mutex:
            return {
                "address": self.address,
                "token": self.token.address,
                "max_lock_seconds": self.max_lock_seconds,
                "locks": [lock.to_dict() for lock in self.locks.values()],
            }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], token: "ERC20Token", clock: "Clock"
    ) -> "TimelockVault":
        if normalize_address(data["token"]) != token.address:
            raise InvalidAddressError(
                "Vault state refers to a different token",
                details={"expected": data["token"], "got": token.address},
            )
        vault = cls(
            token=token,
            clock=clock,
            address=data["address"],
            max_lock_seconds=data.get("max_lock_seconds", 0),
        )
        for entry in data.get("locks", []):
            lock = Lock.from_dict(entry)
            vault.locks[lock.depositor] = lock
        return vault
