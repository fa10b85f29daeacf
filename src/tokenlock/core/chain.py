"""
Local development chain.

Bundles a ``SimulatedClock`` with deployed tokens and vaults. Contracts
read time through the chain: inside ``transact`` they see the pending
block's timestamp, outside it they see the latest mined block.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, TypeVar

from .addresses import derive_address, normalize_address
from .clock import SimulatedClock
from .contracts.erc20 import ERC20Factory, ERC20Token
from .contracts.timelock import TimelockVault
from .exceptions import InvalidAddressError, TimelockError

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATE_VERSION = 1


class LocalChain:
    """In-process chain holding contracts and simulated block time."""

    def __init__(self, clock: SimulatedClock | None = None) -> None:
        self.clock = clock or SimulatedClock()
        self.token_factory = ERC20Factory(clock=self)
        self.vaults: dict[str, TimelockVault] = {}
        self._executing_at: int | None = None

    # ==================== Clock ====================

    def now(self) -> int:
        if self._executing_at is not None:
            return self._executing_at
        return self.clock.now()

    @contextmanager
    def _execution(self) -> Iterator[int]:
        timestamp = self.clock.pending_timestamp()
        self._executing_at = timestamp
        try:
            yield timestamp
        finally:
            self._executing_at = None

    def transact(self, operation: Callable[[], T]) -> T:
        """
        Run ``operation`` in the pending block.

        With automine on, a block is mined after a successful operation.
        A failed operation mines nothing.
        """
        with self._execution():
            result = operation()
        if self.clock.automine:
            self.clock.mine()
        return result

    # ==================== Deployment ====================

    def deploy_token(
        self,
        creator: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        initial_supply: int = 0,
        mint_to: str | None = None,
    ) -> ERC20Token:
        return self.transact(
            lambda: self.token_factory.create_token(
                creator=creator,
                name=name,
                symbol=symbol,
                decimals=decimals,
                initial_supply=initial_supply,
                mint_to=mint_to,
            )
        )

    def deploy_vault(self, deployer: str, token_address: str, max_lock_seconds: int = 0) -> TimelockVault:
        token = self.get_token(token_address)
        address = derive_address("timelock", deployer, token.address, len(self.vaults))

        def _deploy() -> TimelockVault:
            vault = TimelockVault(
                token=token, clock=self, address=address, max_lock_seconds=max_lock_seconds
            )
            self.vaults[vault.address] = vault
            return vault

        vault = self.transact(_deploy)
        logger.info(
            "Timelock vault deployed",
            extra={"event": "vault.deployed", "vault": vault.address, "token": token.address},
        )
        return vault

    def get_token(self, address: str) -> ERC20Token:
        token = self.token_factory.get_token(normalize_address(address))
        if token is None:
            raise InvalidAddressError(f"No token deployed at {address}")
        return token

    def get_vault(self, address: str) -> TimelockVault:
        vault = self.vaults.get(normalize_address(address))
        if vault is None:
            raise InvalidAddressError(f"No vault deployed at {address}")
        return vault

    # ==================== Persistence ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "clock": self.clock.to_dict(),
            "tokens": [token.to_dict() for token in self.token_factory.deployed_tokens.values()],
            "vaults": [vault.to_dict() for vault in self.vaults.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocalChain":
        if not isinstance(data, dict):
            raise TimelockError(
                f"Malformed state: expected an object, got {type(data).__name__}"
            )
        if data.get("version") != STATE_VERSION:
            raise TimelockError(
                f"Unsupported state version {data.get('version')!r}",
                details={"expected": STATE_VERSION},
            )
        if not isinstance(data.get("clock"), dict):
            raise TimelockError("Malformed state: 'clock' must be an object")
        for key in ("tokens", "vaults"):
            if not isinstance(data.get(key, []), list):
                raise TimelockError(f"Malformed state: {key!r} must be a list")

        try:
            chain = cls(SimulatedClock.from_dict(data["clock"]))
            for token_data in data.get("tokens", []):
                chain.token_factory.register(ERC20Token.from_dict(token_data))
            for vault_data in data.get("vaults", []):
                token = chain.get_token(vault_data["token"])
                vault = TimelockVault.from_dict(vault_data, token=token, clock=chain)
                chain.vaults[vault.address] = vault
        except (TypeError, AttributeError) as exc:
            raise TimelockError(f"Malformed state: {exc}") from exc
        return chain

    def save(self, path: Path) -> None:
        """Atomically write chain state as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self.to_dict(), handle, indent=2)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Chain state saved", extra={"event": "chain.saved", "path": str(path)})

    @classmethod
    def load(cls, path: Path) -> "LocalChain":
        with Path(path).open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return cls.from_dict(data)
