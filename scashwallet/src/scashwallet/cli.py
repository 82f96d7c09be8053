"""
SCASH Wallet CLI - Create wallets, check balances, send coins and engrave messages.
"""

from __future__ import annotations

import asyncio
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import typer
from loguru import logger

from scashwallet.config import Settings, get_settings
from scashwallet.errors import InsufficientFunds, WalletError
from scashwallet.wallet.coin_selection import spendable_balance
from scashwallet.wallet.models import CoinSelection

if TYPE_CHECKING:
    from scashwallet.wallet.service import WalletService

app = typer.Typer(
    name="scash-wallet",
    help="SCASH single-address wallet",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _build_service(settings: Settings, with_explorer: bool = False) -> WalletService:
    from scashwallet.backends.bitcoin_core import BitcoinCoreBackend
    from scashwallet.backends.explorer import ExplorerClient
    from scashwallet.payload import load_payload_codec
    from scashwallet.wallet.history import PendingLedger
    from scashwallet.wallet.service import WalletService

    network = settings.get_network()
    endpoints = settings.get_rpc_endpoints()
    if not endpoints:
        raise WalletError(
            "No RPC endpoints configured (BITCOIN_RPC_ENDPOINTS=url|user|password,...)"
        )

    explorer = None
    if with_explorer:
        explorer = ExplorerClient(
            settings.explorer_api_url,
            timeout=settings.explorer_timeout,
            cache_ttl=settings.explorer_cache_ttl,
        )

    codec = load_payload_codec(settings.payload_codec, network) if settings.payload_codec else None

    return WalletService(
        backend=BitcoinCoreBackend(endpoints, timeout=settings.bitcoin_rpc_timeout),
        network=network,
        ledger=PendingLedger(settings.pending_file),
        explorer=explorer,
        codec=codec,
        fee_conf_target=settings.fee_conf_target,
        engrave_platform_fee=settings.engrave_platform_fee,
        charge_send_platform_fee=settings.charge_send_platform_fee,
    )


def _load_blob(wallet_file: Path) -> str:
    from scashwallet.wallet.vault import load_wallet_file

    if not wallet_file.exists():
        logger.error(f"Wallet file not found: {wallet_file}. Run 'scash-wallet create' first")
        raise typer.Exit(1)
    return load_wallet_file(wallet_file).data


def _print_selection(selection: CoinSelection) -> None:
    print(f"  Inputs:        {len(selection.utxos)} ({selection.total_value} SCASH)")
    print(f"  Network fee:   {selection.fee.fee_coin} SCASH ({selection.fee.size} vB)")
    print(f"  Platform fee:  {selection.platform_fee} SCASH")
    print(f"  Total:         {selection.required} SCASH")


@app.command()
def generate() -> None:
    """Generate a new 12-word mnemonic phrase."""
    from scashwallet.wallet.bip32 import generate_mnemonic

    setup_logging()
    mnemonic = generate_mnemonic()

    typer.echo("\n" + "=" * 80)
    typer.echo("GENERATED MNEMONIC - WRITE THIS DOWN AND KEEP IT SAFE!")
    typer.echo("=" * 80)
    typer.echo(f"\n{mnemonic}\n")
    typer.echo("=" * 80)
    typer.echo("Anyone with this phrase can spend your coins.")
    typer.echo("=" * 80 + "\n")


@app.command()
def create(
    mnemonic: str = typer.Option(
        None, "--mnemonic", envvar="MNEMONIC", help="Existing 12-word mnemonic to restore"
    ),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, confirmation_prompt=True
    ),
    output_file: Path | None = typer.Option(None, "--output", "-o", help="Wallet file path"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing wallet file"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Create (or restore from a mnemonic) an encrypted wallet file."""
    from scashwallet.wallet.bip32 import generate_mnemonic
    from scashwallet.wallet.vault import (
        build_wallet_file,
        create_wallet_record,
        encrypt_wallet,
        save_wallet_file,
    )

    setup_logging(log_level)
    settings = get_settings()
    path = output_file or settings.wallet_file

    if path.exists() and not force:
        logger.error(f"{path} already exists, use --force to overwrite")
        raise typer.Exit(1)

    generated = not mnemonic
    phrase = mnemonic or generate_mnemonic()

    try:
        record = create_wallet_record(phrase, password, settings.get_network())
        save_wallet_file(build_wallet_file(encrypt_wallet(record, password)), path)
    except WalletError as e:
        logger.error(f"Failed to create wallet: {e}")
        raise typer.Exit(1)

    if generated:
        typer.echo(f"\nNew mnemonic (write it down):\n\n{phrase}\n")
    typer.echo(f"Address: {record.address}")
    typer.echo(f"Wallet file: {path}")


@app.command()
def info(
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    wallet_file: Path | None = typer.Option(None, "--wallet-file", "-f"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Show the wallet address and spendable balance."""
    setup_logging(log_level)
    settings = get_settings()

    try:
        asyncio.run(_show_info(settings, wallet_file or settings.wallet_file, password))
    except (WalletError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


async def _show_info(settings: Settings, wallet_file: Path, password: str) -> None:
    service = _build_service(settings)
    try:
        record = service.unlock(_load_blob(wallet_file), password)
        utxos = await service.get_utxos(record.address)
        balance = sum((u.amount for u in utxos), Decimal(0))
        spendable = spendable_balance(utxos)

        print(f"\nNetwork:    {settings.get_network().name}")
        print(f"Address:    {record.address}")
        print(f"Balance:    {balance} SCASH")
        print(f"Spendable:  {spendable} SCASH")
        print(f"UTXOs:      {len(utxos)}")
        print(f"Pending:    {len(service.ledger.pending())}")
    finally:
        await service.close()


def _parse_amount(amount: str) -> Decimal:
    try:
        return Decimal(amount)
    except InvalidOperation:
        logger.error(f"Invalid amount: {amount}")
        raise typer.Exit(1)


@app.command()
def send(
    address: str = typer.Argument(..., help="Destination address"),
    amount: str = typer.Argument(..., help="Amount in SCASH"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    wallet_file: Path | None = typer.Option(None, "--wallet-file", "-f"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Send coins to an address."""
    setup_logging(log_level)
    settings = get_settings()
    value = _parse_amount(amount)

    try:
        asyncio.run(
            _spend(settings, wallet_file or settings.wallet_file, password, yes, address, value)
        )
    except InsufficientFunds as e:
        logger.error(f"Insufficient funds: need {e.required} SCASH, have {e.available} SCASH")
        raise typer.Exit(1)
    except (WalletError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


@app.command()
def engrave(
    text: str = typer.Argument(..., help="Message to engrave on chain"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    wallet_file: Path | None = typer.Option(None, "--wallet-file", "-f"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Engrave a text message into a transaction."""
    setup_logging(log_level)
    settings = get_settings()

    try:
        asyncio.run(
            _spend(settings, wallet_file or settings.wallet_file, password, yes, None, None, text)
        )
    except InsufficientFunds as e:
        logger.error(f"Insufficient funds: need {e.required} SCASH, have {e.available} SCASH")
        raise typer.Exit(1)
    except (WalletError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


async def _spend(
    settings: Settings,
    wallet_file: Path,
    password: str,
    yes: bool,
    address: str | None,
    amount: Decimal | None,
    text: str | None = None,
) -> None:
    service = _build_service(settings)
    try:
        blob = _load_blob(wallet_file)
        record = service.unlock(blob, password)
        utxos = await service.get_utxos(record.address)
        fee_rate = await service.get_fee_rate()

        if text is not None:
            selection = service.prepare_engrave(utxos, text, fee_rate)
            print(f"\nEngraving {len(text)} character(s) in {len(selection.outputs)} output(s)")
        else:
            assert address is not None and amount is not None
            selection = service.prepare_send(utxos, address, amount, fee_rate)
            print(f"\nSending {amount} SCASH to {address}")
        _print_selection(selection)

        if not yes and not typer.confirm("\nBroadcast this transaction?"):
            print("Aborted")
            return

        if text is not None:
            result = await service.engrave(blob, password, selection)
        else:
            result = await service.send(blob, password, selection)

        print(f"\nBroadcast: {result.txid}")
        print(f"Change:    {result.change} SCASH")
    finally:
        await service.close()


@app.command()
def history(
    wallet_file: Path | None = typer.Option(None, "--wallet-file", "-f"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    messages: bool = typer.Option(False, "--messages", "-m", help="Show engraved messages"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Show the address transaction history."""
    setup_logging(log_level)
    settings = get_settings()

    try:
        asyncio.run(
            _show_history(settings, wallet_file or settings.wallet_file, password, messages)
        )
    except (WalletError, ValueError, httpx.HTTPError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


async def _show_history(
    settings: Settings, wallet_file: Path, password: str, show_messages: bool
) -> None:
    from scashwallet.payload import format_preview

    service = _build_service(settings, with_explorer=True)
    try:
        record = service.unlock(_load_blob(wallet_file), password)
        entries = await service.get_history(record.address)
        if not entries:
            print("\nNo transactions.")
            return

        print(f"\n{'Type':<8} {'Amount':>20}  {'Conf':>6}  Txid")
        print("-" * 104)
        for entry in entries:
            sign = "+" if entry.is_positive else "-"
            print(
                f"{entry.type.value:<8} {sign + str(entry.amount):>20}  "
                f"{entry.confirmations:>6}  {entry.txid}"
            )

        if show_messages:
            found = await service.get_messages(record.address)
            print(f"\n{len(found)} engraved message(s)")
            for tx, message in found:
                origin = "me" if message.is_from_self else "other"
                print(f"  {tx.txid[:16]}  [{origin}]  {format_preview(message.content)}")
    finally:
        await service.close()


@app.command()
def pending(
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Refresh and list broadcast transactions awaiting confirmation."""
    setup_logging(log_level)
    settings = get_settings()

    try:
        asyncio.run(_show_pending(settings))
    except (WalletError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


async def _show_pending(settings: Settings) -> None:
    service = _build_service(settings)
    try:
        confirmed = await service.update_pending()
        for txid in confirmed:
            print(f"Confirmed: {txid}")

        entries = service.ledger.pending()
        if not entries:
            print("\nNo pending transactions.")
            return

        print(f"\n{len(entries)} pending transaction(s):")
        for entry in entries:
            print(
                f"  {entry.id}  out {entry.total_output} SCASH  "
                f"change {entry.change} SCASH  fee {entry.fee_rate} SCASH"
            )
    finally:
        await service.close()


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
