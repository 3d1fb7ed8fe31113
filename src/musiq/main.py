# main.py
from __future__ import annotations

import logging
import os
import signal
import sys
from pathlib import Path

import click
from PySide6.QtCore import QCoreApplication, QTimer

from musiq.core.config import AppConfig, load_config
from musiq.core.errors import MusiqError, PlaybackError
from musiq.core.state import AppState, Notify
from musiq.core.utils import format_duration, format_size
from musiq.db.catalog import Catalog
from musiq.db.database import debug_print_schema
from musiq.inbox.store import InboxStore
from musiq.library.importer import LibraryImporter
from musiq.library.metadata import extract_track
from musiq.library.worker import ImportWorker
from musiq.player.mpv_ipc import MpvBackendConfig, MpvIpcBackend
from musiq.player.player import Player

logger = logging.getLogger(__name__)


def init_app_state(config: AppConfig, with_player: bool = True) -> AppState:
    app_state = AppState(config)

    app_state.catalog = Catalog(config.db_path)
    if config.debug_schema:
        debug_print_schema(app_state.catalog._db())

    app_state.importer = LibraryImporter(app_state.catalog, batch_size=config.import_batch_size)
    app_state.inbox = InboxStore(config.inbox_index_path, app_state.importer)

    if with_player:
        try:
            backend = MpvIpcBackend(MpvBackendConfig(mpv_path=config.mpv_path))
            backend.start()
            app_state.player = Player(backend, config.poll_interval_ms, config.default_volume)
        except MusiqError as e:
            app_state.player = None
            app_state.queued_notifications.append(
                Notify(message=f"Failed to initialize audio player: {e}", notify_type="error")
            )

    return app_state


def _print_progress(processed: int, total: int, label: str) -> None:
    click.echo(f"  [{processed}/{total}] {label}")


def _flush(app_state: AppState) -> None:
    for n in app_state.flush_notifications():
        click.echo(f"{n.notify_type}: {n.message}", err=n.notify_type == "error")


# -------------------------------
# CLI
# -------------------------------
@click.group()
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), help="Directory holding the library files")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, data_dir: Path | None, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(str(data_dir) if data_dir else None)


def _services(ctx: click.Context, with_player: bool = False) -> AppState:
    app_state = init_app_state(ctx.obj["config"], with_player=with_player)
    ctx.call_on_close(app_state.shutdown)
    return app_state


def _run_import_worker(app_state: AppState, root: str) -> tuple[bool, str, int]:
    """Run one import on an ImportWorker thread, spinning a Qt loop until it ends."""
    qt_app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    worker = ImportWorker(app_state.importer, root)
    result: list[tuple[bool, str, int]] = []

    worker.progress_signal.connect(_print_progress)
    worker.finished_signal.connect(lambda ok, message, imported: result.append((ok, message, imported)))
    worker.finished.connect(qt_app.quit)

    previous = signal.signal(signal.SIGINT, lambda *_: worker.cancel())
    try:
        worker.start()
        qt_app.exec()
        worker.wait()
    finally:
        signal.signal(signal.SIGINT, previous)

    # deliver anything still queued from the worker thread
    QCoreApplication.processEvents()
    return result[0] if result else (False, "Import did not report a result", 0)


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def import_cmd(ctx: click.Context, path: Path) -> None:
    """Import every audio file under PATH into the library."""
    app_state = _services(ctx)
    before = app_state.catalog.total_count()

    ok, message, imported = _run_import_worker(app_state, str(path.resolve()))
    if not ok:
        click.echo(f"Error: {message} ({imported:,} tracks kept)", err=True)
        sys.exit(1)

    click.echo(f"Imported {imported:,} tracks ({before:,} -> {app_state.catalog.total_count():,})")


@cli.command()
@click.pass_context
def scan(ctx: click.Context) -> None:
    """Import every configured library root."""
    app_state = _services(ctx)
    roots = app_state.catalog.get_library_roots()
    if not roots:
        click.echo("No library roots configured. Use 'musiq roots add PATH'.")
        return

    failed = False
    for root in roots:
        click.echo(f"Scanning {root}")
        try:
            count = app_state.importer.import_folder(root, _print_progress)
            click.echo(f"  {count:,} new tracks")
        except MusiqError as e:
            click.echo(f"  Error: {e}", err=True)
            failed = True
    if failed:
        sys.exit(1)


@cli.group()
def roots() -> None:
    """Manage the library root directories."""


@roots.command("list")
@click.pass_context
def roots_list(ctx: click.Context) -> None:
    for path in _services(ctx).catalog.get_library_roots():
        click.echo(path)


@roots.command("add")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def roots_add(ctx: click.Context, path: Path) -> None:
    catalog = _services(ctx).catalog
    catalog.set_library_roots(catalog.get_library_roots() + [str(path.resolve())])


@roots.command("remove")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_context
def roots_remove(ctx: click.Context, path: Path) -> None:
    catalog = _services(ctx).catalog
    target = str(path.resolve())
    catalog.set_library_roots([p for p in catalog.get_library_roots() if p != target])


@cli.group()
def inbox() -> None:
    """Stage folders for review before importing them."""


@inbox.command("add")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def inbox_add(ctx: click.Context, path: Path) -> None:
    item = _services(ctx).inbox.add_folder(str(path.resolve())).result()
    if item is None:
        click.echo("Item was removed while scanning.")
        return
    click.echo(f"{item.id}  {item.status.value:<9} {item.track_count or 0:>5} tracks  {item.folder_name}")


@inbox.command("list")
@click.pass_context
def inbox_list(ctx: click.Context) -> None:
    items = _services(ctx).inbox.list_items()
    if not items:
        click.echo("Inbox is empty.")
        return
    for item in items:
        click.echo(
            f"{item.id}  {item.status.value:<9} {item.track_count or 0:>5} tracks  "
            f"{format_size(item.total_size or 0):>9}  {item.folder_path}"
        )


@inbox.command("tracks")
@click.argument("item_id")
@click.pass_context
def inbox_tracks(ctx: click.Context, item_id: str) -> None:
    for t in _services(ctx).inbox.tracks_for(item_id):
        click.echo(f"{format_duration(t.duration):>7}  {t.artist} - {t.title}  [{t.album}]")


@inbox.command("import")
@click.argument("item_id")
@click.pass_context
def inbox_import(ctx: click.Context, item_id: str) -> None:
    if not _services(ctx).inbox.import_item(item_id, _print_progress):
        click.echo(f"Error: could not import {item_id}", err=True)
        sys.exit(1)


@inbox.command("remove")
@click.argument("item_id")
@click.pass_context
def inbox_remove(ctx: click.Context, item_id: str) -> None:
    if not _services(ctx).inbox.remove_item(item_id):
        click.echo(f"No inbox item {item_id}", err=True)
        sys.exit(1)


@inbox.command("clear")
@click.pass_context
def inbox_clear(ctx: click.Context) -> None:
    _services(ctx).inbox.clear_all()


@cli.command()
@click.argument("query")
@click.pass_context
def search(ctx: click.Context, query: str) -> None:
    for t in _services(ctx).catalog.search(query):
        click.echo(f"{t.id:>6}  {format_duration(t.duration):>7}  {t.artist} - {t.title}  [{t.album}]")


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    catalog = _services(ctx).catalog
    click.echo(f"Tracks:   {catalog.total_count():,}")
    click.echo(f"Artists:  {len(catalog.all_artists()):,}")
    click.echo(f"Albums:   {len(catalog.all_albums()):,}")
    click.echo(f"Duration: {format_duration(catalog.total_duration())}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--volume", type=click.FloatRange(0.0, 1.0), default=None, help="Playback volume 0..1")
@click.pass_context
def play(ctx: click.Context, path: Path, volume: float | None) -> None:
    """Play one file until it ends."""
    qt_app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app_state = _services(ctx, with_player=True)
    _flush(app_state)
    player = app_state.player
    if player is None:
        sys.exit(1)

    file_path = os.path.abspath(str(path))
    track = app_state.catalog.get_by_path(file_path) or extract_track(file_path)
    if track is None:
        click.echo(f"Error: {file_path} is not a playable audio file", err=True)
        sys.exit(1)

    if volume is not None:
        player.set_volume(volume)
    player.ended.connect(qt_app.quit)
    player.trackChanged.connect(
        lambda np: np and click.echo(f"Playing {np.artist} - {np.title} ({format_duration(np.duration)})")
    )

    try:
        player.play(track)
    except PlaybackError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if getattr(track, "id", None) is not None:
        app_state.catalog.record_play(track.id)

    # Let Python run its SIGINT handler while the Qt loop is spinning.
    signal.signal(signal.SIGINT, lambda *_: qt_app.quit())
    wakeup = QTimer()
    wakeup.start(200)
    wakeup.timeout.connect(lambda: None)
    qt_app.exec()
    player.stop()


def main() -> None:
    cli(standalone_mode=True)  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()
