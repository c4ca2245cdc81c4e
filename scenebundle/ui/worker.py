from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QObject, QThread, Signal

from scenebundle.core.bundle import ExportRequest, SceneBundle, SettingsArg
from scenebundle.core.host import SceneCollectionHost
from scenebundle.core.settings import BundleSettings
from scenebundle.models import BundleState, OperationResult


class _BundleWorker(QObject):
    """
    Runs one SceneBundle operation off the UI thread.

    Progress is re-emitted as signals; receivers living on the UI thread get
    them through Qt's queued connections.
    """

    file_progress = Signal(str, float)     # entry name, fraction
    overall_progress = Signal(float)       # fraction
    state_changed = Signal(str)            # BundleState value
    log = Signal(str)
    finished = Signal(object, object)      # OperationResult, issues

    def __init__(self, host: SceneCollectionHost, settings: Optional[BundleSettings] = None):
        super().__init__()
        self.bundle = SceneBundle(
            host,
            settings,
            on_file_progress=self.file_progress.emit,
            on_overall_progress=self.overall_progress.emit,
            on_state_changed=self._on_state,
        )

    def _on_state(self, state: BundleState):
        self.state_changed.emit(state.value)
        self.log.emit(f"---- {state.value.upper()} ----")

    def cancel(self):
        self.bundle.cancel()

    def interrupt(self):
        # the owning window is closing; the result will be CALLER_DESTROYED
        self.bundle.interrupt(OperationResult.CALLER_DESTROYED)

    def _finish(self, result: OperationResult):
        for i in self.bundle.issues:
            suffix = f" ({i.relpath})" if i.relpath else ""
            self.log.emit(f"{i.level} {i.code}: {i.message}{suffix}")
        self.log.emit(f"Result: {result.value}")
        self.finished.emit(result, list(self.bundle.issues))


class BundleExportWorker(_BundleWorker):
    def __init__(
        self,
        host: SceneCollectionHost,
        target_path: str,
        request: Optional[ExportRequest] = None,
        settings: Optional[BundleSettings] = None,
    ):
        super().__init__(host, settings)
        self.target_path = target_path
        self.request = request

    def run(self):
        self.log.emit(f"Exporting to {self.target_path}")
        result = self.bundle.export_bundle(self.target_path, self.request)
        for rec in self.bundle.skipped_filters:
            self.log.emit(f"Skipped filter '{rec.filter_name}' on '{rec.source_name}'")
        self._finish(result)


class BundleImportWorker(_BundleWorker):
    def __init__(
        self,
        host: SceneCollectionHost,
        archive_path: str,
        destination: str,
        name: str,
        video_settings: SettingsArg = None,
        audio_settings: SettingsArg = None,
        settings: Optional[BundleSettings] = None,
    ):
        super().__init__(host, settings)
        self.archive_path = archive_path
        self.destination = destination
        self.name = name
        self.video_settings = video_settings
        self.audio_settings = audio_settings

    def run(self):
        self.log.emit(f"Importing {self.archive_path} as '{self.name}'")
        result = self.bundle.import_bundle(
            self.archive_path,
            self.destination,
            self.name,
            self.video_settings,
            self.audio_settings,
        )
        self._finish(result)


def move_to_thread(worker: _BundleWorker) -> QThread:
    """
    Moves worker onto a new, not yet started QThread. Both objects delete
    themselves once the worker reports finished. Connect to the worker's
    signals, then call start() on the returned thread and keep a reference
    to it until it finishes.
    """
    thread = QThread()
    worker.moveToThread(thread)

    thread.started.connect(worker.run)
    worker.finished.connect(thread.quit)
    worker.finished.connect(worker.deleteLater)
    thread.finished.connect(thread.deleteLater)

    return thread
