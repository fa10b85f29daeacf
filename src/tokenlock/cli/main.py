#!/usr/bin/env python3
"""
Tokenlock CLI - drive a timelock vault on a local simulated chain.

Chain state (clock, token balances, active locks) is kept in a JSON state
file between invocations:

    tokenlock init --owner 0xOWNER --initial-supply 1000
    tokenlock transfer --from 0xOWNER --to 0xUSER 10
    tokenlock approve --account 0xUSER max
    tokenlock time set-next 1700000002
    tokenlock lock --account 0xUSER 10 5
    tokenlock time increase 6
    tokenlock withdraw --account 0xUSER
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, NoReturn

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tokenlock.core.chain import LocalChain
from tokenlock.core.clock import SimulatedClock
from tokenlock.core.config import load_settings
from tokenlock.core.contracts.erc20 import UINT256_MAX
from tokenlock.core.contracts.timelock import TimelockVault
from tokenlock.core.exceptions import (
    ConfigurationError,
    TimelockError,
    get_error_context,
)
from tokenlock.core.logging_config import setup_logging
from tokenlock.core.units import format_units, parse_units

logger = logging.getLogger(__name__)
console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> NoReturn:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.warning("CLI command failed", extra={"event": "cli.error", **get_error_context(exc)})
    console.print(f"[bold red]Error:[/] {exc}", soft_wrap=True)
    sys.exit(exit_code)


def _load_chain(ctx: click.Context) -> LocalChain:
    state_file: Path = ctx.obj["state_file"]
    if not state_file.exists():
        raise click.ClickException(
            f"No chain state at {state_file}. Run 'tokenlock init' first."
        )
    try:
        return LocalChain.load(state_file)
    except (ValueError, KeyError, TimelockError) as exc:
        raise click.ClickException(f"Corrupt state file {state_file}: {exc}") from exc


def _save_chain(ctx: click.Context, chain: LocalChain) -> None:
    chain.save(ctx.obj["state_file"])


def _resolve_vault(chain: LocalChain, address: str | None) -> TimelockVault:
    if address:
        return chain.get_vault(address)
    if not chain.vaults:
        raise click.ClickException("No vault deployed")
    return next(iter(chain.vaults.values()))


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    if ctx.obj["json_output"]:
        click.echo(json.dumps(payload, indent=2))
        return
    table = Table(show_header=False, box=box.ROUNDED, title=title)
    for key, value in payload.items():
        table.add_row(str(key), str(value))
    console.print(Panel(table, border_style="cyan"))


def _amount(vault: TimelockVault, raw: str) -> int:
    if raw.lower() == "max":
        return UINT256_MAX
    return parse_units(raw, vault.token.decimals)


def _fmt(vault: TimelockVault, value: int) -> str:
    if value == UINT256_MAX:
        return "unlimited"
    return f"{format_units(value, vault.token.decimals)} {vault.token.symbol}"


# ============================================================================
# CLI Group
# ============================================================================


@click.group()
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Chain state file (defaults to TOKENLOCK_STATE_FILE or ~/.tokenlock/state.json).",
)
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option("--verbose", is_flag=True, help="Emit JSON logs on stdout")
@click.pass_context
def cli(ctx: click.Context, state_file: Path | None, json_output: bool, verbose: bool):
    """
    Tokenlock CLI - lock tokens in a timelock vault and withdraw them later.
    """
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        _cli_fail(exc)

    setup_logging(
        name="tokenlock",
        log_file=settings.log_file,
        level=settings.log_level,
        environment=settings.environment,
        enable_console=verbose,
    )

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["state_file"] = state_file or settings.state_file
    ctx.obj["json_output"] = json_output


@cli.command("init")
@click.option("--owner", required=True, help="Deployer and token owner address")
@click.option("--name", "token_name", default="Lock Token", show_default=True)
@click.option("--symbol", default="LOCK", show_default=True)
@click.option("--decimals", type=click.IntRange(0, 18), help="Token decimals")
@click.option("--initial-supply", default="0", show_default=True, help="Supply minted to owner")
@click.option("--start-time", type=int, help="Genesis block timestamp (defaults to now)")
@click.option("--no-automine", is_flag=True, help="Only mine blocks on 'time mine'")
@click.option("--force", is_flag=True, help="Overwrite an existing state file")
@click.pass_context
def init(
    ctx: click.Context,
    owner: str,
    token_name: str,
    symbol: str,
    decimals: int | None,
    initial_supply: str,
    start_time: int | None,
    no_automine: bool,
    force: bool,
):
    """Deploy a token and a timelock vault on a fresh chain."""
    state_file: Path = ctx.obj["state_file"]
    if state_file.exists() and not force:
        raise click.ClickException(f"{state_file} already exists (use --force to overwrite)")

    settings = ctx.obj["settings"]
    decimals = settings.token_decimals if decimals is None else decimals
    try:
        chain = LocalChain(SimulatedClock(start=start_time))
        token = chain.deploy_token(
            creator=owner,
            name=token_name,
            symbol=symbol,
            decimals=decimals,
            initial_supply=parse_units(initial_supply, decimals),
        )
        vault = chain.deploy_vault(owner, token.address, max_lock_seconds=settings.max_lock_seconds)
        chain.clock.automine = not no_automine
    except TimelockError as exc:
        _cli_fail(exc)

    _save_chain(ctx, chain)
    _emit(
        ctx,
        {
            "token": token.address,
            "vault": vault.address,
            "owner_balance": _fmt(vault, token.balance_of(owner)),
            "timestamp": chain.now(),
            "automine": chain.clock.automine,
        },
        "Deployed",
    )


# ============================================================================
# Token commands
# ============================================================================


@cli.command("transfer")
@click.option("--from", "sender", required=True, help="Sending address")
@click.option("--to", "recipient", required=True, help="Receiving address")
@click.option("--vault", "vault_address", help="Vault whose token to use")
@click.argument("amount")
@click.pass_context
def transfer(ctx: click.Context, sender: str, recipient: str, vault_address: str | None, amount: str):
    """Transfer tokens between accounts."""
    chain = _load_chain(ctx)
    try:
        vault = _resolve_vault(chain, vault_address)
        value = parse_units(amount, vault.token.decimals)
        chain.transact(lambda: vault.token.transfer(sender, recipient, value))
    except TimelockError as exc:
        _cli_fail(exc)
    _save_chain(ctx, chain)
    _emit(
        ctx,
        {
            "from": sender,
            "to": recipient,
            "amount": _fmt(vault, value),
            "recipient_balance": _fmt(vault, vault.token.balance_of(recipient)),
        },
        "Transfer",
    )


@cli.command("approve")
@click.option("--account", required=True, help="Token owner granting the allowance")
@click.option("--vault", "vault_address", help="Vault to approve as spender")
@click.argument("amount")
@click.pass_context
def approve(ctx: click.Context, account: str, vault_address: str | None, amount: str):
    """Allow the vault to pull AMOUNT tokens ('max' for unlimited)."""
    chain = _load_chain(ctx)
    try:
        vault = _resolve_vault(chain, vault_address)
        value = _amount(vault, amount)
        chain.transact(lambda: vault.token.approve(account, vault.address, value))
    except TimelockError as exc:
        _cli_fail(exc)
    _save_chain(ctx, chain)
    _emit(
        ctx,
        {"owner": account, "spender": vault.address, "allowance": _fmt(vault, value)},
        "Approval",
    )


@cli.command("balance")
@click.argument("account")
@click.option("--vault", "vault_address", help="Vault whose token to query")
@click.pass_context
def balance(ctx: click.Context, account: str, vault_address: str | None):
    """Show the token balance of ACCOUNT."""
    chain = _load_chain(ctx)
    try:
        vault = _resolve_vault(chain, vault_address)
        value = vault.token.balance_of(account)
    except TimelockError as exc:
        _cli_fail(exc)
    _emit(
        ctx,
        {"account": account, "balance": format_units(value, vault.token.decimals), "raw": value},
        "Balance",
    )


# ============================================================================
# Vault commands
# ============================================================================


@cli.command("lock")
@click.option("--account", required=True, help="Depositor address")
@click.option("--vault", "vault_address", help="Vault address")
@click.argument("amount")
@click.argument("delay", type=int)
@click.pass_context
def lock(ctx: click.Context, account: str, vault_address: str | None, amount: str, delay: int):
    """Lock AMOUNT tokens for DELAY seconds."""
    chain = _load_chain(ctx)
    try:
        vault = _resolve_vault(chain, vault_address)
        value = parse_units(amount, vault.token.decimals)
        position = chain.transact(lambda: vault.lock(account, value, delay))
    except TimelockError as exc:
        _cli_fail(exc)
    _save_chain(ctx, chain)
    _emit(
        ctx,
        {
            "depositor": position.depositor,
            "amount": _fmt(vault, position.amount),
            "locked_at": position.lock_time,
            "unlock_time": position.unlock_time,
        },
        "Locked",
    )


@cli.command("withdraw")
@click.option("--account", required=True, help="Depositor address")
@click.option("--vault", "vault_address", help="Vault address")
@click.pass_context
def withdraw(ctx: click.Context, account: str, vault_address: str | None):
    """Withdraw ACCOUNT's locked tokens once unlocked."""
    chain = _load_chain(ctx)
    try:
        vault = _resolve_vault(chain, vault_address)
        amount = chain.transact(lambda: vault.withdraw(account))
    except TimelockError as exc:
        _cli_fail(exc)
    _save_chain(ctx, chain)
    _emit(
        ctx,
        {
            "depositor": account,
            "amount": _fmt(vault, amount),
            "balance": _fmt(vault, vault.token.balance_of(account)),
        },
        "Withdrawn",
    )


@cli.command("status")
@click.option("--account", help="Depositor to inspect (all active locks when omitted)")
@click.option("--vault", "vault_address", help="Vault address")
@click.pass_context
def status(ctx: click.Context, account: str | None, vault_address: str | None):
    """Show lock state."""
    chain = _load_chain(ctx)
    try:
        vault = _resolve_vault(chain, vault_address)
        if account:
            position = vault.get_lock(account)
            payload = {
                "depositor": account,
                "state": vault.lock_state(account).value,
                "amount": position.amount if position else 0,
                "unlock_time": position.unlock_time if position else None,
                "time_remaining": vault.time_remaining(account),
                "timestamp": chain.now(),
            }
            _emit(ctx, payload, "Lock")
            return
        locks = vault.active_locks()
    except TimelockError as exc:
        _cli_fail(exc)

    if ctx.obj["json_output"]:
        click.echo(json.dumps({
            "vault": vault.address,
            "total_locked": vault.total_locked,
            "timestamp": chain.now(),
            "locks": [position.to_dict() for position in locks],
        }, indent=2))
        return

    table = Table(title=f"Vault {vault.address}", box=box.SIMPLE)
    table.add_column("Depositor", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Unlock time", justify="right")
    table.add_column("State")
    for position in locks:
        table.add_row(
            position.depositor,
            _fmt(vault, position.amount),
            str(position.unlock_time),
            vault.lock_state(position.depositor).value,
        )
    console.print(table)
    console.print(f"Total locked: {_fmt(vault, vault.total_locked)}")


# ============================================================================
# Time commands
# ============================================================================


@cli.group("time")
def time_group():
    """Inspect and move simulated block time."""


@time_group.command("show")
@click.pass_context
def time_show(ctx: click.Context):
    """Show the latest block and the pending timestamp."""
    chain = _load_chain(ctx)
    _emit(
        ctx,
        {
            "block_number": chain.clock.block_number,
            "timestamp": chain.clock.now(),
            "pending_timestamp": chain.clock.pending_timestamp(),
            "automine": chain.clock.automine,
        },
        "Clock",
    )


@time_group.command("increase")
@click.argument("seconds", type=int)
@click.option("--no-mine", is_flag=True, help="Only shift the pending block")
@click.pass_context
def time_increase(ctx: click.Context, seconds: int, no_mine: bool):
    """Move the next block's timestamp forward by SECONDS and mine it."""
    chain = _load_chain(ctx)
    try:
        chain.clock.increase_time(seconds)
        if not no_mine:
            chain.clock.mine()
    except TimelockError as exc:
        _cli_fail(exc)
    _save_chain(ctx, chain)
    _emit(ctx, {"timestamp": chain.clock.now(), "block_number": chain.clock.block_number}, "Clock")


@time_group.command("set-next")
@click.argument("timestamp", type=int)
@click.pass_context
def time_set_next(ctx: click.Context, timestamp: int):
    """Stage the exact TIMESTAMP of the next block."""
    chain = _load_chain(ctx)
    try:
        chain.clock.set_next_timestamp(timestamp)
    except TimelockError as exc:
        _cli_fail(exc)
    _save_chain(ctx, chain)
    _emit(ctx, {"pending_timestamp": chain.clock.pending_timestamp()}, "Clock")


@time_group.command("mine")
@click.pass_context
def time_mine(ctx: click.Context):
    """Mine the pending block."""
    chain = _load_chain(ctx)
    chain.clock.mine()
    _save_chain(ctx, chain)
    _emit(ctx, {"timestamp": chain.clock.now(), "block_number": chain.clock.block_number}, "Clock")


@time_group.command("automine")
@click.argument("mode", type=click.Choice(["on", "off"]))
@click.pass_context
def time_automine(ctx: click.Context, mode: str):
    """Turn mining after every transaction on or off."""
    chain = _load_chain(ctx)
    chain.clock.automine = mode == "on"
    _save_chain(ctx, chain)
    _emit(ctx, {"automine": chain.clock.automine}, "Clock")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
