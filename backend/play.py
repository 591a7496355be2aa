"""Headless match client.

    python play.py --address 0x... --api-key ... create --wager 1000 --difficulty 5
    python play.py --address 0x... --api-key ... join 3
"""
import logging

import click

from matchclient import (
    HttpLedgerGateway, MatchClient, MatchClientError, Outcome, PollPolicy, RelayLink,
)


@click.group()
@click.option('--ledger-url', envvar='LEDGER_URL', default='http://localhost:5000', show_default=True)
@click.option('--relay-url', envvar='RELAY_URL', default=None,
              help='Relay Socket.IO endpoint; omit to run on ledger polling alone.')
@click.option('--address', envvar='WAGERPONG_ADDRESS', required=True)
@click.option('--api-key', envvar='WAGERPONG_API_KEY', default=None)
@click.option('-v', '--verbose', is_flag=True)
@click.pass_context
def cli(ctx, ledger_url, relay_url, address, api_key, verbose):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    gateway = HttpLedgerGateway(ledger_url, address, api_key)
    relay = RelayLink(relay_url)
    relay.connect()
    try:
        policy = PollPolicy.from_config(gateway.config().get('poll', {}))
    except MatchClientError:
        policy = PollPolicy()
    ctx.obj = MatchClient(gateway, address, relay=relay, policy=policy)
    ctx.call_on_close(relay.disconnect)


def _report(result):
    click.echo(f'{result.outcome.value}' + (f' match={result.match["matchId"]}' if result.match else ''))


@cli.command()
@click.pass_obj
def pending(client):
    """List pending matches."""
    for match in client.pending_matches():
        click.echo(f'#{match["matchId"]} host={match["host"]} wager={match["wager"]} '
                   f'difficulty={match["difficulty"]} expires_at={match["expiresAt"]}')


@cli.command()
@click.option('--wager', type=int, required=True, help='Smallest-unit amount to lock.')
@click.option('--difficulty', type=click.IntRange(1, 10), default=5, show_default=True)
@click.option('--duration', type=int, default=24 * 60 * 60, show_default=True, help='Seconds until expiry.')
@click.option('--play/--no-play', 'then_play', default=True, show_default=True)
@click.pass_obj
def create(client, wager, difficulty, duration, then_play):
    """Create a match and, by default, wait for a challenger and play it."""
    try:
        result = client.create_match(difficulty, duration, wager)
        _report(result)
        if then_play:
            _report(client.play(result.match['matchId'], frame_seconds=1 / 60))
    except MatchClientError as exc:
        raise click.ClickException(str(exc))


@cli.command()
@click.argument('match_id', type=int)
@click.option('--play/--no-play', 'then_play', default=True, show_default=True)
@click.pass_obj
def join(client, match_id, then_play):
    """Join a pending match and play it."""
    try:
        result = client.join_match(match_id)
        _report(result)
        if then_play and result.outcome is Outcome.JOINED:
            _report(client.play(match_id, frame_seconds=1 / 60))
    except MatchClientError as exc:
        raise click.ClickException(str(exc))


@cli.command()
@click.argument('match_id', type=int)
@click.option('--expired', is_flag=True, help='Reclaim an expired match instead (any caller).')
@click.pass_obj
def cancel(client, match_id, expired):
    """Cancel a pending match."""
    try:
        _report(client.cancel_expired(match_id) if expired else client.cancel_match(match_id))
    except MatchClientError as exc:
        raise click.ClickException(str(exc))


if __name__ == '__main__':
    cli()
