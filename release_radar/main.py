"""
Main CLI interface for Release Radar

Command groups:
- auth: login, logout and status of the Spotify authorization
- artists: list cached followed artists, update them from Spotify
- releases: show cached releases per release week, update them from Spotify
- info: release week and cache information
- playlist: create weekly playlists from cached releases
- config: show or change the configuration
- doctor: check configuration, authentication and cached update states

Updates are resumable. A failed or interrupted `artists update` or
`releases update` continues from its checkpoint the next time the same
command runs, unless --force is given.
"""

import sys
import functools
from typing import Optional

import click

from . import __version__
from .config.settings import get_settings, reload_settings
from .config.auth import get_auth, reset_auth
from .spotify.models import ReleaseKinds
from .spotify.playlist import PlaylistBuilder
from .sync.engine import ReleaseRadar, SyncResult
from .sync.state import UpdateStatus
from .sync.store import open_store
from .utils.helpers import format_table, format_timestamp
from .utils.logger import configure_from_settings, get_logger, get_current_log_file

logger = get_logger(__name__)


class ReleaseKindsType(click.ParamType):
    """Click parameter accepting a comma separated list of release kinds"""

    name = "kinds"

    def convert(self, value, param, ctx):
        if isinstance(value, ReleaseKinds):
            return value
        try:
            return ReleaseKinds.parse(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


RELEASE_KINDS = ReleaseKindsType()


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Ctrl-C exits with 130, any other error is reported in red on stderr and
    exits with 1.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def _radar(ctx: click.Context) -> ReleaseRadar:
    obj = ctx.ensure_object(dict)
    if obj.get('radar') is None:
        obj['radar'] = ReleaseRadar(open_store())
    return obj['radar']


def _auth(ctx: click.Context):
    obj = ctx.ensure_object(dict)
    return obj.get('auth') or get_auth()


def _kinds_or_default(radar: ReleaseRadar, kinds: Optional[ReleaseKinds]) -> ReleaseKinds:
    return kinds or radar.settings.get_default_release_kinds()


def _report(result: SyncResult, label: str) -> None:
    """Print a sync summary, exiting with 1 when the run failed"""
    if result.success:
        click.echo(click.style(f"{label} updated", fg='green'))
        click.echo(f"   Processed: {result.processed}")
        click.echo(f"   New: {result.added}")
        if result.removed:
            click.echo(f"   Removed: {result.removed}")
        if result.skipped:
            click.echo(f"   Skipped: {result.skipped}")
        return

    click.echo(click.style(f"{label} update failed at {result.stage}: {result.error}", fg='red'), err=True)
    if result.processed:
        click.echo(
            f"   {result.processed} items were saved. Run the same command again to resume, "
            f"or add --force to start over.",
            err=True
        )
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    Release Radar - weekly new releases of the artists you follow

    Caches your followed artists and their releases locally, shows them per
    Saturday-to-Friday release week and builds weekly playlists.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"Release Radar {__version__}")
        return

    if config:
        reload_settings(config)

    configure_from_settings(verbose=verbose)
    ctx.obj['verbose'] = verbose
    if config:
        logger.info(f"Loaded config: {config}")

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Authentication

@cli.group()
def auth():
    """Spotify authorization"""
    pass


@auth.command()
@click.option('--no-browser', is_flag=True, help='Print the authorization URL instead of opening a browser')
@click.pass_context
@handle_error
def login(ctx, no_browser):
    """
    Authorize Release Radar with Spotify

    Runs the PKCE authorization flow unless a valid token is already stored.
    """
    auth_manager = _auth(ctx)

    if auth_manager.is_authenticated():
        user_info = auth_manager.get_user_info()
        username = user_info.get('display_name') or user_info.get('id', 'Unknown') if user_info else 'Unknown'
        click.echo(f"Already authenticated as: {username}")
        return

    click.echo("Starting Spotify authentication...")
    auth_manager.login(open_browser=not no_browser)

    user_info = auth_manager.get_user_info()
    username = user_info.get('display_name') or user_info.get('id', 'Unknown') if user_info else 'Unknown'
    click.echo(f"Successfully authenticated as: {username}")


@auth.command()
@click.pass_context
@handle_error
def logout(ctx):
    """Remove the stored token"""
    _auth(ctx).logout()
    reset_auth()
    click.echo("Successfully logged out")


@auth.command()
@click.pass_context
@handle_error
def status(ctx):
    """Show whether a valid token is stored"""
    auth_manager = _auth(ctx)

    if not auth_manager.is_authenticated():
        click.echo("Authentication Status: Not authenticated")
        click.echo("   Run 'release-radar auth login' to authenticate")
        return

    user_info = auth_manager.get_user_info()
    if user_info:
        click.echo("Authentication Status: Authenticated")
        click.echo(f"   User: {user_info.get('display_name') or user_info.get('id', 'Unknown')}")
        click.echo(f"   Country: {user_info.get('country', 'Unknown')}")
    else:
        click.echo("Authentication Status: Authenticated (limited info)")


# Artists

@cli.group(invoke_without_command=True)
@click.option('--search', '-s', help='Only show artists whose name contains this text')
@click.pass_context
@handle_error
def artists(ctx, search):
    """List cached followed artists"""
    if ctx.invoked_subcommand is not None:
        return

    cached = _radar(ctx).cached_artists()
    if search:
        needle = search.lower()
        cached = [artist for artist in cached if needle in artist.name.lower()]

    if not cached:
        if search:
            click.echo(f"No cached artists match '{search}'")
        else:
            click.echo("No cached artists. Run 'release-radar artists update' first.")
        return

    rows = [(artist.name, artist.id, ", ".join(artist.genres[:3])) for artist in cached]
    click.echo(format_table(["Name", "ID", "Genres"], rows))
    click.echo(f"\n{len(cached)} artists")


@artists.command('update')
@click.option('--force', '-f', is_flag=True, help='Discard the checkpoint and refetch everything')
@click.pass_context
@handle_error
def artists_update(ctx, force):
    """Update cached followed artists from Spotify"""
    result = _radar(ctx).sync_artists(force=force)
    _report(result, "Artists")


# Releases

def _print_week(week, releases) -> None:
    click.echo(click.style(f"Week {week.label} ({week.start.isoformat()} - {week.end.isoformat()})", bold=True))
    if not releases:
        click.echo("   No releases cached for this week\n")
        return
    rows = [
        (release.release_date.isoformat(), release.primary_artist, release.name, release.kind.value)
        for release in releases
    ]
    click.echo(format_table(["Date", "Artist", "Name", "Type"], rows))
    click.echo()


@cli.group(invoke_without_command=True)
@click.option('--previous-weeks', '-p', type=click.IntRange(min=0), default=0, help='Also show this many earlier weeks')
@click.option('--release-date', '-d', help='Show the week containing this date (YYYY-MM-DD)')
@click.option('--type', '-t', 'kinds', type=RELEASE_KINDS, help='Release kinds, e.g. album,single or all')
@click.pass_context
@handle_error
def releases(ctx, previous_weeks, release_date, kinds):
    """Show cached releases per release week"""
    if ctx.invoked_subcommand is not None:
        return

    radar = _radar(ctx)
    anchor = radar.parse_anchor(release_date)
    weeks = radar.releases_for_display(anchor, previous_weeks, _kinds_or_default(radar, kinds))

    for week, week_releases in weeks:
        _print_week(week, week_releases)

    if radar.cache_info().release_count == 0:
        click.echo("No releases cached. Run 'release-radar releases update' first.")


@releases.command('update')
@click.option('--force', '-f', is_flag=True, help='Clear the release cache and refetch everything')
@click.option('--type', '-t', 'kinds', type=RELEASE_KINDS, help='Release kinds to fetch, e.g. album,single or all')
@click.pass_context
@handle_error
def releases_update(ctx, force, kinds):
    """Update cached releases of every cached artist"""
    radar = _radar(ctx)
    result = radar.sync_releases(kinds=_kinds_or_default(radar, kinds), force=force)
    _report(result, "Releases")


# Information

@cli.command()
@click.option('--release-week', is_flag=True, help='Show the current release week')
@click.option('--artists', 'show_artists', is_flag=True, help='Compare cached and followed artist counts')
@click.option('--previous-weeks', '-p', type=click.IntRange(min=0), help='List this many earlier release weeks')
@click.option('--release-date', '-d', help='Show the release week of this date (YYYY-MM-DD)')
@click.pass_context
@handle_error
def info(ctx, release_week, show_artists, previous_weeks, release_date):
    """Release week and cache information"""
    radar = _radar(ctx)

    if release_week:
        current = radar.week_info().current
        click.echo(f"Current release week: {current.label}")
        click.echo(f"Current release week dates: {current.start.isoformat()} - {current.end.isoformat()}")
        return

    if show_artists:
        cached = radar.cache_info().artist_count
        remote = radar.remote_artist_count()
        click.echo(f"Artist count cache: {cached}")
        click.echo(f"Artist count remote: {remote}")
        if cached < remote:
            click.echo(click.style(f"Artist cache is outdated by {remote - cached}.", fg='yellow'))
        return

    if previous_weeks is not None:
        anchor = radar.parse_anchor(release_date)
        for week in radar.week_info(anchor, previous_weeks).weeks:
            click.echo(f"Release week {week.label}: {week.start.isoformat()} - {week.end.isoformat()}")
        return

    if release_date:
        anchor = radar.parse_anchor(release_date)
        click.echo(f"{anchor.isoformat()} is in release week {radar.week_info(anchor).current.label}")
        return

    cache = radar.cache_info()
    current = radar.week_info().current
    click.echo(f"Current release week: {current}")
    click.echo(f"Cached artists: {cache.artist_count}")
    click.echo(f"Cached releases: {cache.release_count}")
    for state in sorted(cache.states, key=lambda s: s.key):
        line = f"Update {state.key}: {state.status.value}, last change {format_timestamp(state.updated_at)}"
        if state.stage:
            line += f" (stopped at {state.stage})"
        click.echo(line)

    log_file = get_current_log_file()
    if log_file:
        click.echo(f"Log file: {log_file}")


# Configuration

@cli.group()
def config():
    """Show or change the configuration"""
    pass


@config.command()
@handle_error
def show():
    """Show current configuration"""
    settings = get_settings()

    click.echo("Current Configuration:\n")
    click.echo(f"Loaded from: {settings.loaded_from or 'defaults'}")

    click.echo("\nSync:")
    click.echo(f"   Default types: {settings.sync.default_release_types}")
    click.echo(f"   Chunk size: {settings.sync.chunk_size} artists")
    click.echo(f"   Chunk pause: {settings.sync.chunk_pause}s")

    click.echo("\nNetwork:")
    click.echo(f"   Max retries: {settings.network.max_retries}")
    click.echo(f"   Max Retry-After: {settings.network.max_retry_after}s")

    click.echo("\nPlaylist:")
    click.echo(f"   Name template: {settings.playlist.name_template}")
    click.echo(f"   Public: {settings.playlist.public}")

    click.echo(f"\nData directory: {settings.get_data_directory()}")


@config.command('set')
@click.option('--type', '-t', 'kinds', type=RELEASE_KINDS, help='Default release kinds')
@click.option('--chunk-size', type=click.IntRange(min=1), help='Artists per chunk during release updates')
@click.option('--chunk-pause', type=click.FloatRange(min=0), help='Seconds to pause after every chunk')
@click.option('--public/--private', default=None, help='Visibility of created playlists')
@handle_error
def set_config(kinds, chunk_size, chunk_pause, public):
    """Update configuration settings and save them"""
    settings = get_settings()
    changes = []

    if kinds:
        settings.sync.default_release_types = str(kinds)
        changes.append(f"Default types: {kinds}")

    if chunk_size is not None:
        settings.sync.chunk_size = chunk_size
        changes.append(f"Chunk size: {chunk_size}")

    if chunk_pause is not None:
        settings.sync.chunk_pause = chunk_pause
        changes.append(f"Chunk pause: {chunk_pause}s")

    if public is not None:
        settings.playlist.public = public
        changes.append(f"Public playlists: {public}")

    if not changes:
        click.echo("No changes specified")
        return

    path = settings.save_config()
    click.echo(f"Configuration updated ({path}):")
    for change in changes:
        click.echo(f"   • {change}")


@cli.command()
@click.pass_context
@handle_error
def doctor(ctx):
    """Check configuration, authentication and the local cache"""
    click.echo("Running diagnostics...\n")
    issues = []
    settings = get_settings()

    errors = settings.validate()
    if errors:
        click.echo("Configuration: invalid")
        issues.extend(errors)
    else:
        click.echo("Configuration: OK")

    if _auth(ctx).is_authenticated():
        click.echo("Spotify authentication: OK")
    else:
        click.echo("Spotify authentication: Not authenticated")
        issues.append("Run 'release-radar auth login' to authenticate")

    cache_dir = settings.get_cache_directory()
    if cache_dir.is_dir():
        click.echo(f"Cache directory: {cache_dir}")
    else:
        click.echo(f"Cache directory: {cache_dir} (will be created)")

    for state in _radar(ctx).cache_info().states:
        if state.status != UpdateStatus.COMPLETED:
            issues.append(f"Update {state.key} is {state.status.value}; run it again to resume")

    if issues:
        click.echo(f"\nFound {len(issues)} issues:")
        for issue in issues:
            click.echo(f"   • {issue}")
        sys.exit(1)

    click.echo("\nAll systems operational!")


# Playlists

@cli.command()
@click.option('--previous-weeks', '-p', type=click.IntRange(min=0), default=0, help='Also build this many earlier weeks')
@click.option('--release-date', '-d', help='Build the week containing this date (YYYY-MM-DD)')
@click.option('--type', '-t', 'kinds', type=RELEASE_KINDS, help='Release kinds, one playlist per kind')
@click.pass_context
@handle_error
def playlist(ctx, previous_weeks, release_date, kinds):
    """Create weekly playlists from cached releases"""
    radar = _radar(ctx)
    builder = ctx.obj.get('playlist_builder') or PlaylistBuilder(
        radar.client, radar.fetcher, radar.aggregator, radar.settings
    )

    outcomes = builder.build(radar.parse_anchor(release_date), previous_weeks, _kinds_or_default(radar, kinds))

    for outcome in outcomes:
        if outcome.status == "created":
            click.echo(click.style(f"Created {outcome.name} with {outcome.track_count} tracks", fg='green'))
        elif outcome.status == "exists":
            click.echo(f"Skipped {outcome.name}: already exists")
        else:
            click.echo(f"Skipped {outcome.name}: no releases")


if __name__ == '__main__':
    cli()
