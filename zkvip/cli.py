"""
Command-Line Interface for zkvip

Browse groups, create groups, and join balance-gated groups by generating a
zero-knowledge proof of balance >= minimum.
"""

import logging

import click
import trio
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from zkvip import __version__
from zkvip.groups import (
    AccessController,
    AccessError,
    CborFileStorage,
    GroupStore,
    GroupStoreError,
)
from zkvip.membership_proof import (
    MembershipProofError,
    ProofInputs,
    ProofService,
    RpcBalanceOracle,
    generate_random_nonce,
    get_proof_backend,
    scale_amount,
)
from zkvip.settings import load_settings

console = Console()


def _open_store(settings) -> GroupStore:
    return GroupStore(CborFileStorage(settings.store_dir))


def _build_service(settings) -> ProofService:
    backend = get_proof_backend(prefer=settings.proof_backend)
    oracle = RpcBalanceOracle(
        rpc_url=settings.rpc_url,
        token_address=settings.token_address,
        timeout=settings.oracle_timeout,
    )
    return ProofService(
        backend,
        circuit_path=settings.circuit_path,
        oracle=oracle,
        allow_mock_balance=settings.allow_mock_balance,
        oracle_timeout=settings.oracle_timeout,
    )


def _run_with_progress(description, async_fn, *args):
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=100)

        def on_progress(percent, text):
            progress.update(task, completed=percent, description=text)

        return trio.run(async_fn, *args, on_progress)


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--config',
    type=click.Path(exists=True, dir_okay=False),
    help='YAML settings file (default: $ZKVIP_CONFIG)'
)
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, config, verbose):
    """
    zkvip - join token-gated groups with zero-knowledge balance proofs.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        ctx.obj = load_settings(config)
    except MembershipProofError as exc:
        raise click.ClickException(str(exc))


@main.group()
def groups():
    """Manage available and joined groups."""


@groups.command()
@click.pass_obj
def seed(settings):
    """Populate the starter groups (first run only)."""
    try:
        seeded = _open_store(settings).seed_defaults()
    except GroupStoreError as exc:
        raise click.ClickException(str(exc))
    if seeded:
        click.echo(click.style("✓ Default groups created", fg="green"))
    else:
        click.echo("Store already initialized; nothing to do.")


@groups.command(name='list')
@click.option('--all', 'show_all', is_flag=True, help='Include groups already joined')
@click.option(
    '--max-min-balance',
    type=str,
    help='Only groups whose minimum balance is at most this many WLD (e.g. 1)'
)
@click.pass_obj
def list_groups(settings, show_all, max_min_balance):
    """List groups you can join."""
    try:
        available = _open_store(settings).list_available(
            excluding_joined=not show_all, max_min_balance=max_min_balance
        )
    except GroupStoreError as exc:
        raise click.ClickException(str(exc))

    table = Table(title="Available groups")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Min balance", justify="right")
    table.add_column("Members", justify="right")
    table.add_column("Description")
    for group in available:
        table.add_row(
            group.id,
            group.name,
            f"{group.min_balance} WLD",
            str(group.members),
            group.description,
        )
    console.print(table)


@groups.command()
@click.pass_obj
def joined(settings):
    """List groups you have joined."""
    try:
        records = _open_store(settings).list_joined()
    except GroupStoreError as exc:
        raise click.ClickException(str(exc))

    table = Table(title="Joined groups")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Unread", justify="right")
    table.add_column("Last message")
    table.add_column("Joined at")
    for group in records:
        table.add_row(
            group.id,
            group.name,
            str(group.unread_count),
            f"{group.last_sender}: {group.last_message}",
            group.joined_at,
        )
    console.print(table)


@groups.command()
@click.argument('name')
@click.option('--min-balance', required=True, type=str, help='Minimum balance in WLD')
@click.option('--description', default='', help='Group description')
@click.option('--creator', default='you', help='Creator name shown in the description')
@click.pass_obj
def create(settings, name, min_balance, description, creator):
    """Create a group and join it as its creator (no proof needed)."""
    try:
        controller = AccessController(_open_store(settings))
        group = controller.create_group_as_creator(
            name,
            description or f"Group created by {creator}",
            min_balance,
        )
    except GroupStoreError as exc:
        raise click.ClickException(str(exc))
    click.echo(click.style(f"✓ Group \"{group.name}\" created ({group.id})", fg="green"))


@groups.command()
@click.argument('group_id')
@click.option('--wallet', required=True, help='Wallet address holding the tokens')
@click.pass_obj
def join(settings, group_id, wallet):
    """Prove your balance and join GROUP_ID."""
    try:
        store = _open_store(settings)
    except GroupStoreError as exc:
        raise click.ClickException(str(exc))
    if store.is_joined(group_id):
        click.echo(f"Already a member of {group_id}.")
        return
    group = store.get_available(group_id)
    if group is None:
        raise click.ClickException(f"unknown group: {group_id}")

    service = _build_service(settings)
    controller = AccessController(store, service)
    try:
        record = _run_with_progress(
            "Checking balance...", controller.request_join, group, wallet
        )
    except (MembershipProofError, AccessError, GroupStoreError) as exc:
        raise click.ClickException(str(exc))

    reading = service.last_balance
    if reading is not None and reading.mocked:
        click.echo(click.style("⚠️  Balance was MOCKED (development mode)", fg="yellow"))
    click.echo(click.style(f"✓ Joined {record.name}!", fg="green"))


@groups.command()
@click.argument('group_id')
@click.argument('text')
@click.option('--sender', default='You', help='Sender name')
@click.pass_obj
def message(settings, group_id, text, sender):
    """Record a message in a joined group."""
    try:
        store = _open_store(settings)
        store.record_message(group_id, text, sender)
        if sender != 'You':
            store.increment_unread(group_id)
    except GroupStoreError as exc:
        raise click.ClickException(str(exc))


@groups.command()
@click.argument('group_id')
@click.pass_obj
def read(settings, group_id):
    """Mark a joined group as read."""
    try:
        _open_store(settings).clear_unread(group_id)
    except GroupStoreError as exc:
        raise click.ClickException(str(exc))


@main.command()
@click.option('--threshold', required=True, type=str, help='Minimum balance in WLD')
@click.option('--balance', required=True, type=str, help='Balance in WLD')
@click.option('--show-proof', is_flag=True, help='Print the base64 proof')
@click.pass_obj
def prove(settings, threshold, balance, show_proof):
    """Generate a proof for explicit amounts (no wallet lookup)."""
    service = _build_service(settings)
    nonce = generate_random_nonce()
    try:
        inputs = ProofInputs(
            threshold=scale_amount(threshold),
            balance=scale_amount(balance),
            nonce=nonce,
            secret_nonce=nonce,
        )
        result = _run_with_progress(
            "Generating proof...", service.generate_proof, inputs
        )
    except MembershipProofError as exc:
        raise click.ClickException(str(exc))

    status = click.style("valid", fg="green") if result.is_valid else click.style("INVALID", fg="red")
    click.echo(f"Proof: {len(result.proof)} bytes, {status}")
    click.echo(f"Public inputs: {', '.join(str(v) for v in result.public_inputs)}")
    if show_proof:
        click.echo(result.proof_b64)


if __name__ == '__main__':
    main()
