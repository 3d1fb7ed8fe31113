# player/mpv_ipc.py
from __future__ import annotations

import json
import logging
import os
import queue
import shutil
import socket
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from musiq.core.errors import BackendError
from musiq.player.backend import AudioBackend, ChannelState, Handle

logger = logging.getLogger(__name__)


# -----------------------------
# Utilities
# -----------------------------

def _is_windows() -> bool:
    return os.name == "nt"


def _default_ipc_endpoint(app_name: str = "musiq-mpv") -> str:
    """
    Windows: named pipe path (\\.\pipe\<name>)
    Unix:    unix socket in the temp dir, unique per process
    """
    if _is_windows():
        return rf"\\.\pipe\{app_name}-{os.getpid()}"
    return os.path.join(tempfile.gettempdir(), f"{app_name}-{os.getpid()}.sock")


def _remove_unix_socket_if_exists(path: str) -> None:
    if _is_windows():
        return
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning("Cannot remove stale mpv socket %s: %s", path, e)


def find_mpv_binary(preferred_path: Optional[str] = None) -> Optional[str]:
    if preferred_path:
        return preferred_path if os.path.isfile(preferred_path) else None
    return shutil.which("mpv")


# -----------------------------
# IPC transport
# -----------------------------

class MpvJsonIpcTransport:
    """
    Line-delimited JSON over mpv's IPC endpoint.

    Unix: AF_UNIX socket. Windows: the named pipe opened as a binary file.
    Incoming lines are parsed on a reader thread and queued for recv_nowait().
    """

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        self._stop = threading.Event()
        self._rx_thread: Optional[threading.Thread] = None
        self._rx_queue: "queue.Queue[dict[str, Any]]" = queue.Queue()
        self._tx_lock = threading.Lock()
        self._pipe_fh = None
        self._sock: Optional[socket.socket] = None

    def connect(self, timeout_s: float = 3.0) -> None:
        deadline = time.time() + timeout_s
        last_err: Optional[Exception] = None

        while time.time() < deadline and not self._stop.is_set():
            try:
                if _is_windows():
                    self._pipe_fh = open(self.endpoint, "r+b", buffering=0)
                else:
                    s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
                    try:
                        s.connect(self.endpoint)
                    except OSError:
                        s.close()
                        raise
                    self._sock = s
                break
            except OSError as e:
                last_err = e
                time.sleep(0.05)

        if self._sock is None and self._pipe_fh is None:
            raise BackendError(f"Failed to connect to mpv IPC at {self.endpoint}: {last_err!r}")

        self._rx_thread = threading.Thread(target=self._rx_loop, name="mpv-ipc-rx", daemon=True)
        self._rx_thread.start()

    @property
    def connected(self) -> bool:
        return not self._stop.is_set() and (self._sock is not None or self._pipe_fh is not None)

    def close(self) -> None:
        self._stop.set()
        if self._sock is not None:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._sock.close()
            self._sock = None
        if self._pipe_fh is not None:
            self._pipe_fh.close()
            self._pipe_fh = None

    def send(self, payload: dict[str, Any]) -> None:
        line = (json.dumps(payload) + "\n").encode("utf-8")
        with self._tx_lock:
            try:
                if self._pipe_fh is not None:
                    self._pipe_fh.write(line)
                    self._pipe_fh.flush()
                elif self._sock is not None:
                    self._sock.sendall(line)
                else:
                    raise BackendError("mpv IPC not connected")
            except OSError as e:
                raise BackendError(f"mpv IPC write failed: {e}") from e

    def recv_nowait(self) -> Optional[dict[str, Any]]:
        try:
            return self._rx_queue.get_nowait()
        except queue.Empty:
            return None

    def _read_chunk(self) -> bytes:
        if self._pipe_fh is not None:
            return self._pipe_fh.read(4096)
        if self._sock is not None:
            return self._sock.recv(4096)
        return b""

    def _rx_loop(self) -> None:
        buf = b""
        try:
            while not self._stop.is_set():
                try:
                    chunk = self._read_chunk()
                except OSError:
                    break
                if not chunk:
                    break

                buf += chunk
                while b"\n" in buf:
                    line, buf = buf.split(b"\n", 1)
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        msg = json.loads(line.decode("utf-8", errors="replace"))
                    except ValueError:
                        logger.debug("Ignoring malformed mpv line: %r", line)
                        continue
                    if isinstance(msg, dict):
                        self._rx_queue.put(msg)
        finally:
            self._stop.set()


# -----------------------------
# Backend (mpv process + JSON protocol)
# -----------------------------

@dataclass
class MpvBackendConfig:
    mpv_path: Optional[str] = None
    ipc_endpoint: Optional[str] = None
    open_timeout_s: float = 5.0
    cwd: Optional[str] = None


class MpvIpcBackend(AudioBackend):
    """
    AudioBackend driving one long-lived mpv process through JSON IPC.

    mpv plays one file at a time, so a handle is just a generation number:
    each open() bumps it and only the newest generation is valid.
    """
    name = "mpv-ipc"

    def __init__(self, config: Optional[MpvBackendConfig] = None, transport: Optional[MpvJsonIpcTransport] = None):
        self.config = config or MpvBackendConfig()
        self.ipc = self.config.ipc_endpoint or _default_ipc_endpoint()

        self._proc: Optional[subprocess.Popen] = None
        self._transport = transport
        self._lock = threading.RLock()

        self._req_id = 0
        self._pending: dict[int, "queue.Queue[dict[str, Any]]"] = {}
        self._observers: dict[str, list[Callable[[Any], None]]] = {}

        self._generation = 0
        self._current: Optional[int] = None

        # cached properties/events
        self._time_pos_s: float = 0.0
        self._duration_s: float = 0.0
        self._paused: bool = True
        self._idle: bool = True
        self._loaded: bool = False
        self._ended: bool = False
        self._end_reason: Optional[str] = None

    # ---- lifecycle ----

    def start(self) -> None:
        with self._lock:
            if self._transport is not None and self._transport.connected:
                return

            if self._transport is None:
                mpv_bin = find_mpv_binary(self.config.mpv_path)
                if not mpv_bin:
                    raise BackendError("mpv binary not found (set MUSIQ_MPV or install mpv).")

                _remove_unix_socket_if_exists(self.ipc)
                args = [
                    mpv_bin,
                    "--idle=yes",
                    "--no-video",
                    "--audio-display=no",
                    "--keep-open=no",
                    "--pause=yes",
                    f"--input-ipc-server={self.ipc}",
                    "--terminal=no",
                    "--msg-level=all=warn",
                ]
                creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0) if _is_windows() else 0
                try:
                    self._proc = subprocess.Popen(
                        args,
                        stdin=subprocess.DEVNULL,
                        stdout=subprocess.DEVNULL,
                        stderr=subprocess.DEVNULL,
                        cwd=self.config.cwd or None,
                        creationflags=creationflags,
                    )
                except OSError as e:
                    raise BackendError(f"Cannot start mpv: {e}") from e

                self._transport = MpvJsonIpcTransport(self.ipc)

            self._transport.connect(timeout_s=3.0)

            self.observe_property("time-pos", self._on_time_pos)
            self.observe_property("duration", self._on_duration)
            self.observe_property("pause", self._on_pause)
            self.observe_property("idle-active", self._on_idle)
            logger.info("mpv backend ready on %s", self.ipc)

    def close(self) -> None:
        with self._lock:
            if self._transport is not None and self._transport.connected:
                try:
                    self.command("quit")
                except BackendError:
                    logger.debug("mpv quit command failed", exc_info=True)
            if self._transport is not None:
                self._transport.close()
            if self._proc is not None:
                try:
                    self._proc.wait(timeout=2.0)
                except subprocess.TimeoutExpired:
                    self._proc.terminate()
                self._proc = None
            self._current = None

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    # ---- protocol helpers ----

    def _next_id(self) -> int:
        self._req_id += 1
        return self._req_id

    def command(self, *args: Any) -> None:
        if self._transport is None:
            raise BackendError("mpv backend not started")
        self._transport.send({"command": list(args)})

    def command_wait(self, *args: Any, timeout_s: float = 1.0) -> dict[str, Any]:
        if self._transport is None:
            raise BackendError("mpv backend not started")
        rid = self._next_id()
        q: "queue.Queue[dict[str, Any]]" = queue.Queue()
        self._pending[rid] = q
        self._transport.send({"command": list(args), "request_id": rid})

        deadline = time.time() + timeout_s
        while time.time() < deadline:
            self.process_messages(max_messages=50)
            try:
                return q.get_nowait()
            except queue.Empty:
                time.sleep(0.005)

        self._pending.pop(rid, None)
        raise BackendError(f"mpv command timed out: {args!r}")

    def get_property(self, name: str, timeout_s: float = 1.0) -> Any:
        resp = self.command_wait("get_property", name, timeout_s=timeout_s)
        if resp.get("error") == "success":
            return resp.get("data")
        return None

    def set_property(self, name: str, value: Any) -> None:
        self.command("set_property", name, value)

    def observe_property(self, name: str, on_change: Callable[[Any], None]) -> None:
        if name not in self._observers:
            self._observers[name] = []
            self.command("observe_property", self._next_id(), name)
        self._observers[name].append(on_change)

    def process_messages(self, max_messages: int = 200) -> None:
        if self._transport is None:
            return
        for _ in range(max_messages):
            msg = self._transport.recv_nowait()
            if msg is None:
                break

            if "request_id" in msg:
                q = self._pending.pop(msg.get("request_id"), None)
                if q is not None:
                    q.put_nowait(msg)
                continue

            event = msg.get("event")
            if event == "property-change":
                for cb in list(self._observers.get(msg.get("name"), ())):
                    cb(msg.get("data"))
            elif event == "file-loaded":
                self._loaded = True
                # end-file events before this one belong to the previous file
                self._ended = False
                self._end_reason = None
            elif event == "end-file":
                self._ended = True
                self._end_reason = msg.get("reason")

    # ---- cached property handlers ----

    def _on_time_pos(self, value: Any) -> None:
        self._time_pos_s = float(value) if isinstance(value, (int, float)) else 0.0

    def _on_duration(self, value: Any) -> None:
        self._duration_s = float(value) if isinstance(value, (int, float)) else 0.0

    def _on_pause(self, value: Any) -> None:
        self._paused = bool(value)

    def _on_idle(self, value: Any) -> None:
        self._idle = bool(value)

    # ---- AudioBackend ----

    def _check(self, handle: Handle) -> None:
        if self._current is None or handle != self._current:
            raise BackendError(f"Invalid stream handle: {handle!r}")

    def open(self, path: str) -> Handle:
        with self._lock:
            if not os.path.isfile(path):
                raise BackendError(f"File not found: {path}")
            self.start()

            self._generation += 1
            self._current = None
            self._loaded = False
            self._ended = False
            self._end_reason = None
            self._time_pos_s = 0.0
            self._duration_s = 0.0

            self.set_property("pause", True)
            self.command("loadfile", path, "replace")

            deadline = time.time() + self.config.open_timeout_s
            while time.time() < deadline:
                self.process_messages()
                if self._loaded:
                    self._current = self._generation
                    return self._current
                if self._ended and self._end_reason == "error":
                    break
                time.sleep(0.01)

            self.command("stop")
            raise BackendError(f"mpv could not open {path} (reason: {self._end_reason or 'timeout'})")

    def play(self, handle: Handle) -> None:
        with self._lock:
            self._check(handle)
            self.set_property("pause", False)
            self._paused = False

    def pause(self, handle: Handle) -> None:
        with self._lock:
            self._check(handle)
            self.set_property("pause", True)
            self._paused = True

    def stop(self, handle: Handle) -> None:
        with self._lock:
            self._check(handle)
            self.command("stop")

    def free(self, handle: Handle) -> None:
        with self._lock:
            if self._current is not None and handle == self._current:
                self._current = None

    def position(self, handle: Handle) -> float:
        with self._lock:
            self._check(handle)
            self.process_messages()
            return self._time_pos_s

    def set_position(self, handle: Handle, seconds: float) -> None:
        with self._lock:
            self._check(handle)
            self.command("seek", float(seconds), "absolute+exact")
            self._time_pos_s = float(seconds)

    def length(self, handle: Handle) -> float:
        with self._lock:
            self._check(handle)
            self.process_messages()
            if self._duration_s <= 0:
                value = self.get_property("duration")
                if isinstance(value, (int, float)):
                    self._duration_s = float(value)
            return self._duration_s

    def channel_state(self, handle: Handle) -> ChannelState:
        with self._lock:
            self._check(handle)
            self.process_messages()
            if self._ended or self._idle:
                return ChannelState.STOPPED
            return ChannelState.PAUSED if self._paused else ChannelState.PLAYING

    def set_volume(self, handle: Handle, volume: float) -> None:
        with self._lock:
            self._check(handle)
            # mpv volume is 0..100
            self.set_property("volume", min(1.0, max(0.0, float(volume))) * 100.0)
