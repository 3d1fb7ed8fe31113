# library/worker.py
import threading

from PySide6.QtCore import QThread, Signal

from musiq.core.errors import ImportCancelledError, MusiqError
from musiq.library.importer import LibraryImporter


class ImportWorker(QThread):
    progress_signal = Signal(int, int, str)     # processed, total, file name
    finished_signal = Signal(bool, str, int)    # ok, message, imported

    def __init__(self, importer: LibraryImporter, root: str, parent=None):
        super().__init__(parent)
        self.importer = importer
        self.root = root
        self._cancel = threading.Event()

    def cancel(self) -> None:
        self._cancel.set()
        self.requestInterruption()

    def run(self):
        session = self.importer.start(self.root, cancel=self._cancel)
        try:
            for event in session:
                self.progress_signal.emit(event.processed, event.total, event.label)
            self.finished_signal.emit(True, f"Imported {session.imported} tracks", session.imported)
        except ImportCancelledError as e:
            self.finished_signal.emit(False, str(e), e.imported)
        except MusiqError as e:
            self.finished_signal.emit(False, f"Import failed: {e}", session.imported)
