from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING

from PySide6.QtCore import QObject, Signal, Slot

if TYPE_CHECKING:
    from musiq.core.config import AppConfig
    from musiq.db.catalog import Catalog
    from musiq.inbox.store import InboxStore
    from musiq.library.importer import LibraryImporter
    from musiq.player.player import Player


@dataclass(frozen=True)
class Notify:
    message: str
    notify_type: str = "info"   # info/success/warn/error


class AppState(QObject):
    """Services owned by the entry point, handed to whoever needs them."""
    notification = Signal(object)   # emits Notify

    def __init__(self, config: "AppConfig"):
        super().__init__()
        self.config = config
        self.catalog: "Catalog | None" = None
        self.importer: "LibraryImporter | None" = None
        self.inbox: "InboxStore | None" = None
        self.player: "Player | None" = None
        self.queued_notifications: list[Notify] = []

    @Slot(str, str)
    def notify(self, message: str, notify_type: str = "info"):
        self.notification.emit(Notify(message=message, notify_type=notify_type))

    def flush_notifications(self) -> list[Notify]:
        queued, self.queued_notifications = self.queued_notifications, []
        for n in queued:
            self.notification.emit(n)
        return queued

    def shutdown(self) -> None:
        if self.player is not None:
            self.player.shutdown()
        if self.inbox is not None:
            self.inbox.shutdown()
        if self.catalog is not None:
            self.catalog.close()
