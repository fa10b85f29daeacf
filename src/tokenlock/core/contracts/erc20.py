"""
ERC20-style fungible token ledger.

The token the vault custodies. Supports:
- Balance and allowance queries
- transfer, approve, transferFrom (pull-based allowance model)
- Owner-only minting with an optional supply cap
- Transfer / Approval event log

Every state-changing call validates first and mutates last, so a rejected
call leaves balances and allowances untouched.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict

from ..addresses import ZERO_ADDRESS, derive_address, normalize_address
from ..exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidAddressError,
    InvalidAmountError,
    TokenError,
)

if TYPE_CHECKING:
    from ..clock import Clock

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    In-memory ERC20 token.

    Addresses are normalized to lowercase. An allowance of ``UINT256_MAX``
    is treated as unlimited and is never decremented by ``transfer_from``.
    Events are stamped from ``clock`` when one is attached, otherwise from
    wall time. The event log is in-process only and is not serialized.
    """

    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0
    address: str = ""
    owner: str = ""

    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)

    # 0 = unlimited
    max_supply: int = 0
    clock: "Clock | None" = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.address:
            self.address = derive_address(self.name, self.symbol, time.time_ns())
        self.address = normalize_address(self.address)
        if self.owner:
            self.owner = normalize_address(self.owner)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        """Get the token balance of an account."""
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        """Get the amount ``spender`` may still pull from ``owner``."""
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        return self.allowances.get(owner_norm, {}).get(spender_norm, 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens (msg.sender)
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            InsufficientBalanceError: If sender holds less than ``amount``
            TokenError: If an address or the amount is invalid
        """
        sender_norm = normalize_address(sender)
        recipient_norm = self._require_recipient(recipient)
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise InsufficientBalanceError(
                f"ERC20: transfer amount exceeds balance ({amount} > {sender_balance})",
                details={"account": sender_norm, "balance": sender_balance, "amount": amount},
            )

        self._move(sender_norm, recipient_norm, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            },
        )
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """
        Approve spender to pull up to ``amount`` tokens from owner.

        Replaces any previous allowance.
        """
        owner_norm = normalize_address(owner)
        spender_norm = self._require_recipient(spender, field_name="spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit("Approval", owner_norm, spender_norm, amount)
        return True

    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """
        Transfer tokens using an allowance.

        Args:
            spender: Address executing transfer (msg.sender)
            from_addr: Token owner
            to_addr: Recipient
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            InsufficientAllowanceError: If the allowance is below ``amount``
            InsufficientBalanceError: If the owner holds less than ``amount``
        """
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = self._require_recipient(to_addr)
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise InsufficientAllowanceError(
                f"ERC20: insufficient allowance ({current_allowance} < {amount})",
                details={
                    "owner": from_norm,
                    "spender": spender_norm,
                    "allowance": current_allowance,
                    "amount": amount,
                },
            )

        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise InsufficientBalanceError(
                f"ERC20: transfer amount exceeds balance ({amount} > {from_balance})",
                details={"account": from_norm, "balance": from_balance, "amount": amount},
            )

        if current_allowance != UINT256_MAX:
            self.allowances[from_norm][spender_norm] = current_allowance - amount

        self._move(from_norm, to_norm, amount)
        return True

    def increase_allowance(self, owner: str, spender: str, added_value: int) -> bool:
        """Increase spender's allowance, saturating at ``UINT256_MAX``."""
        self._validate_amount(added_value)
        new_allowance = min(self.allowance(owner, spender) + added_value, UINT256_MAX)
        return self.approve(owner, spender, new_allowance)

    def decrease_allowance(self, owner: str, spender: str, subtracted_value: int) -> bool:
        """
        Decrease spender's allowance.

        Raises:
            InsufficientAllowanceError: If the decrease exceeds the allowance
        """
        self._validate_amount(subtracted_value)
        current = self.allowance(owner, spender)
        if subtracted_value > current:
            raise InsufficientAllowanceError("ERC20: decreased allowance below zero")
        return self.approve(owner, spender, current - subtracted_value)

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (owner only).

        Raises:
            TokenError: If the caller is not the owner or the cap is exceeded
        """
        if normalize_address(minter) != self.owner:
            raise TokenError("ERC20: caller is not owner", details={"caller": minter})

        to_norm = self._require_recipient(to)
        self._validate_amount(amount)

        if self.max_supply > 0 and self.total_supply + amount > self.max_supply:
            raise TokenError(
                f"ERC20: mint would exceed max supply "
                f"({self.total_supply + amount} > {self.max_supply})"
            )

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            },
        )
        return True

    # ==================== Helpers ====================

    def _move(self, from_norm: str, to_norm: str, amount: int) -> None:
        self.balances[from_norm] = self.balances.get(from_norm, 0) - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", from_norm, to_norm, amount)

    def _require_recipient(self, address: str, field_name: str = "recipient") -> str:
        try:
            normalized = normalize_address(address)
        except InvalidAddressError as exc:
            raise InvalidAddressError(f"ERC20: invalid {field_name}: {exc.message}") from exc
        if normalized == ZERO_ADDRESS:
            raise InvalidAddressError(f"ERC20: {field_name} is zero address")
        return normalized

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidAmountError("ERC20: amount must be an integer")
        if amount < 0:
            raise InvalidAmountError("ERC20: amount cannot be negative")
        if amount > UINT256_MAX:
            raise InvalidAmountError("ERC20: amount exceeds uint256")

    def _emit(self, event_type: str, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
                timestamp=self.clock.now() if self.clock is not None else time.time(),
            )
        )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "max_supply": self.max_supply,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ERC20Token":
        """Deserialize token state from dictionary."""
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            total_supply=data.get("total_supply", 0),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
            max_supply=data.get("max_supply", 0),
        )
        token.balances = {k: int(v) for k, v in data.get("balances", {}).items()}
        token.allowances = {
            k: {s: int(a) for s, a in v.items()}
            for k, v in data.get("allowances", {}).items()
        }
        return token


class ERC20Factory:
    """
    Deploys ERC20 tokens and keeps them addressable.
    """

    def __init__(self, clock: "Clock | None" = None) -> None:
        self.clock = clock
        self.deployed_tokens: dict[str, ERC20Token] = {}

    def create_token(
        self,
        creator: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        initial_supply: int = 0,
        max_supply: int = 0,
        mint_to: str | None = None,
    ) -> ERC20Token:
        """
        Create a new ERC20 token.

        Args:
            creator: Address creating the token (becomes owner)
            name: Token name
            symbol: Token symbol (ticker)
            decimals: Decimal places (default 18)
            initial_supply: Initial supply to mint
            max_supply: Maximum supply cap (0 = unlimited)
            mint_to: Address to mint initial supply to (defaults to creator)

        Raises:
            TokenError: If creation parameters are invalid
        """
        if not name:
            raise TokenError("ERC20Factory: name cannot be empty")
        if not symbol:
            raise TokenError("ERC20Factory: symbol cannot be empty")
        if decimals < 0 or decimals > 18:
            raise TokenError("ERC20Factory: invalid decimals")
        if initial_supply < 0 or max_supply < 0:
            raise TokenError("ERC20Factory: invalid supply")
        if max_supply > 0 and initial_supply > max_supply:
            raise TokenError("ERC20Factory: initial supply exceeds max")

        token = ERC20Token(
            name=name,
            symbol=symbol,
            decimals=decimals,
            owner=creator,
            max_supply=max_supply,
            address=derive_address("erc20", creator, len(self.deployed_tokens), symbol),
            clock=self.clock,
        )

        if initial_supply > 0:
            token.mint(creator, mint_to or creator, initial_supply)

        self.deployed_tokens[token.address] = token

        logger.info(
            "ERC20 token created",
            extra={
                "event": "erc20.created",
                "address": token.address,
                "symbol": symbol,
                "initial_supply": initial_supply,
                "creator": creator[:10],
            },
        )
        return token

    def register(self, token: ERC20Token) -> ERC20Token:
        if token.clock is None:
            token.clock = self.clock
        self.deployed_tokens[token.address] = token
        return token

    def get_token(self, address: str) -> ERC20Token | None:
        return self.deployed_tokens.get(address.lower())

    def list_tokens(self) -> list[Dict[str, Any]]:
        return [
            {
                "address": address,
                "name": token.name,
                "symbol": token.symbol,
                "decimals": token.decimals,
                "total_supply": token.total_supply,
                "owner": token.owner,
            }
            for address, token in self.deployed_tokens.items()
        ]
