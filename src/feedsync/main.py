"""CLI entrypoint for feedsync."""

from collections.abc import Callable
from pathlib import Path

import rich_click as click

from feedsync import __version__
from feedsync.errors import FeedsyncError
from feedsync.reader.controllers import (
    AccountAddCommand,
    ArticleListCommand,
    ArticleMarkCommand,
    ArticleReadAllCommand,
    CountsCommand,
    FeedCommand,
    FeedSubscribeCommand,
    GroupCommand,
    ReaderCliController,
)
from feedsync.sync.controllers import SyncCliController, SyncDaemonCommand, SyncNowCommand

click.rich_click.USE_MARKDOWN = True
READER_CONTROLLER = ReaderCliController()

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)
account_option = click.option(
    "--account",
    "account_id",
    default=None,
    help="Account id. Defaults to FEEDSYNC_ACCOUNT_ID.",
)


@click.group()
@click.version_option(version=__version__, prog_name="feedsync")
def feedsync() -> None:
    """Feed reader sync CLI."""


@feedsync.group()
def account() -> None:
    """Account commands."""


@account.command("add")
@db_path_option
@click.option("--id", "account_id", required=True, help="Account id.")
@click.option("--name", default=None, help="Display name.")
def account_add(db_path: Path | None, account_id: str, name: str | None) -> None:
    """Create an account, or show it if it already exists."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.add_account(
                AccountAddCommand(db_path=db_path, account_id=account_id, name=name),
            ),
        ),
    )


@feedsync.group()
def group() -> None:
    """Feed group commands."""


@group.command("add")
@db_path_option
@account_option
@click.option("--name", required=True, help="Group name.")
def group_add(db_path: Path | None, account_id: str | None, name: str) -> None:
    """Create a feed group."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.add_group(
                GroupCommand(db_path=db_path, account_id=account_id, name=name),
            ),
        ),
    )


@group.command("list")
@db_path_option
@account_option
def group_list(db_path: Path | None, account_id: str | None) -> None:
    """List groups with their feeds."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.list_groups(
                GroupCommand(db_path=db_path, account_id=account_id),
            ),
        ),
    )


@group.command("rename")
@db_path_option
@account_option
@click.option("--group-id", required=True, help="Group id.")
@click.option("--name", required=True, help="New group name.")
def group_rename(db_path: Path | None, account_id: str | None, group_id: str, name: str) -> None:
    """Rename a feed group."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.rename_group(
                GroupCommand(db_path=db_path, account_id=account_id, group_id=group_id, name=name),
            ),
        ),
    )


@group.command("delete")
@db_path_option
@account_option
@click.option("--group-id", required=True, help="Group id.")
def group_delete(db_path: Path | None, account_id: str | None, group_id: str) -> None:
    """Delete a group together with its feeds and their articles."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.delete_group(
                GroupCommand(db_path=db_path, account_id=account_id, group_id=group_id),
            ),
        ),
    )


@feedsync.group()
def feed() -> None:
    """Feed commands."""


@feed.command("subscribe")
@db_path_option
@account_option
@click.option("--url", required=True, help="RSS/Atom feed URL.")
@click.option("--group-id", required=True, help="Group to place the feed in.")
@click.option("--title", default=None, help="Override the feed title.")
def feed_subscribe(
    db_path: Path | None,
    account_id: str | None,
    url: str,
    group_id: str,
    title: str | None,
) -> None:
    """Fetch a feed once and subscribe to it with its current articles."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.subscribe(
                FeedSubscribeCommand(
                    db_path=db_path,
                    account_id=account_id,
                    url=url,
                    group_id=group_id,
                    title=title,
                ),
            ),
        ),
    )


@feed.command("list")
@db_path_option
@account_option
def feed_list(db_path: Path | None, account_id: str | None) -> None:
    """List feeds with their last fetch status."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.list_feeds(
                FeedCommand(db_path=db_path, account_id=account_id),
            ),
        ),
    )


@feed.command("delete")
@db_path_option
@account_option
@click.option("--feed-id", required=True, help="Feed id.")
def feed_delete(db_path: Path | None, account_id: str | None, feed_id: str) -> None:
    """Delete a feed and its articles."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.delete_feed(
                FeedCommand(db_path=db_path, account_id=account_id, feed_id=feed_id),
            ),
        ),
    )


@feedsync.group()
def article() -> None:
    """Article commands."""


@article.command("list")
@db_path_option
@account_option
@click.option("--group-id", default=None, help="Limit to one group. Wins over --feed-id.")
@click.option("--feed-id", default=None, help="Limit to one feed.")
@click.option("--starred", is_flag=True, default=False, help="Only starred articles.")
@click.option(
    "--unread",
    is_flag=True,
    default=False,
    help="Only unread articles. Ignored together with --starred.",
)
@click.option(
    "--page",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Page number.",
)
@click.option(
    "--page-size",
    type=click.IntRange(min=1, max=500),
    default=None,
    help="Articles per page. Defaults to FEEDSYNC_QUERY_PAGE_SIZE.",
)
def article_list(  # noqa: PLR0913
    db_path: Path | None,
    account_id: str | None,
    group_id: str | None,
    feed_id: str | None,
    starred: bool,
    unread: bool,
    page: int,
    page_size: int | None,
) -> None:
    """List articles newest first."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.list_articles(
                ArticleListCommand(
                    db_path=db_path,
                    account_id=account_id,
                    group_id=group_id,
                    feed_id=feed_id,
                    starred=starred,
                    unread=unread,
                    page=page,
                    page_size=page_size,
                ),
            ),
        ),
    )


@article.command("mark")
@db_path_option
@account_option
@click.option("--article-id", required=True, help="Article id.")
@click.option("--read/--unread", "read", default=None, help="Set read state.")
@click.option("--star/--unstar", "starred", default=None, help="Set starred state.")
def article_mark(
    db_path: Path | None,
    account_id: str | None,
    article_id: str,
    read: bool | None,
    starred: bool | None,
) -> None:
    """Update read or starred flags of one article."""

    if read is None and starred is None:
        raise click.UsageError("Pass --read/--unread and/or --star/--unstar.")
    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.mark_article(
                ArticleMarkCommand(
                    db_path=db_path,
                    account_id=account_id,
                    article_id=article_id,
                    read=read,
                    starred=starred,
                ),
            ),
        ),
    )


@article.command("read-all")
@db_path_option
@account_option
@click.option("--group-id", default=None, help="Limit to one group. Wins over --feed-id.")
@click.option("--feed-id", default=None, help="Limit to one feed.")
def article_read_all(
    db_path: Path | None,
    account_id: str | None,
    group_id: str | None,
    feed_id: str | None,
) -> None:
    """Mark every article in the account, a group or a feed as read."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.read_all(
                ArticleReadAllCommand(
                    db_path=db_path,
                    account_id=account_id,
                    group_id=group_id,
                    feed_id=feed_id,
                ),
            ),
        ),
    )


@feedsync.command("counts")
@db_path_option
@account_option
@click.option("--starred", is_flag=True, default=False, help="Count starred articles.")
@click.option("--unread", is_flag=True, default=False, help="Count unread articles.")
def counts(db_path: Path | None, account_id: str | None, starred: bool, unread: bool) -> None:
    """Show per-feed article counts."""

    _emit_lines(
        _run(
            lambda: READER_CONTROLLER.counts(
                CountsCommand(
                    db_path=db_path,
                    account_id=account_id,
                    starred=starred,
                    unread=unread,
                ),
            ),
        ),
    )


@feedsync.group()
def sync() -> None:
    """Sync commands."""


@sync.command("now")
@db_path_option
@account_option
@click.option(
    "--max-workers",
    type=click.IntRange(min=1, max=32),
    default=None,
    help="Feeds fetched in parallel. Defaults to FEEDSYNC_SYNC_MAX_WORKERS.",
)
def sync_now(db_path: Path | None, account_id: str | None, max_workers: int | None) -> None:
    """Run one sync pass over every feed of the account."""

    _emit_lines(
        _run(
            lambda: SyncCliController().run_now(
                SyncNowCommand(db_path=db_path, account_id=account_id, max_workers=max_workers),
                on_progress=click.echo,
            ),
        ),
    )


@sync.command("daemon")
@db_path_option
@account_option
@click.option(
    "--interval-minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Minutes between passes. Defaults to FEEDSYNC_SYNC_INTERVAL_MINUTES.",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1, max=32),
    default=None,
    help="Feeds fetched in parallel. Defaults to FEEDSYNC_SYNC_MAX_WORKERS.",
)
@click.option(
    "--duration-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Stop after this many seconds. Runs until interrupted when omitted.",
)
def sync_daemon(
    db_path: Path | None,
    account_id: str | None,
    interval_minutes: int | None,
    max_workers: int | None,
    duration_seconds: float | None,
) -> None:
    """Sync the account now and then periodically."""

    _emit_lines(
        _run(
            lambda: SyncCliController().run_daemon(
                SyncDaemonCommand(
                    db_path=db_path,
                    account_id=account_id,
                    interval_minutes=interval_minutes,
                    max_workers=max_workers,
                    duration_seconds=duration_seconds,
                ),
                on_progress=click.echo,
            ),
        ),
    )


def _run(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except (FeedsyncError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    feedsync()
