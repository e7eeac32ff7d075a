"""
Log Follower
============

Tail -f del recording.log dirigido por eventos del filesystem (watchdog),
sin polling.

Contrato:
- El archivo debe existir al arrancar (FileNotFoundError si no)
- Arranca posicionado al final: solo se emiten líneas nuevas
- lines() es un generador lazy, infinito y no reiniciable
- Líneas parciales se acumulan hasta recibir su salto de línea

Rotación / truncado (follower.rotation):
- reopen: truncado -> relee desde el offset 0; reemplazo (inode nuevo,
  move/delete + create) -> reabre por path desde el inicio
- stop:   termina la secuencia limpiamente
- fail:   lanza LogRotatedError

El truncado se detecta antes de cada lectura: por tamaño menor al offset, o
porque los últimos bytes leídos ya no coinciden (copytruncate con el recorder
escribiendo más allá del offset viejo). Límite conocido: si el contenido
reescrito repite exactamente esos bytes en las mismas posiciones, el truncado
no se ve y la lectura sigue desde el offset viejo.
"""
import codecs
import logging
import os
from pathlib import Path
from threading import Event
from typing import BinaryIO, Generator, Iterator, Optional, Union

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

ROTATION_POLICIES = ("reopen", "stop", "fail")
READ_CHUNK_SIZE = 64 * 1024
# Últimos bytes consumidos, para detectar truncado + reescritura
TAIL_FINGERPRINT_SIZE = 64

_WATCHED_EVENTS = {
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
}


class LogRotatedError(Exception):
    """El archivo seguido fue rotado o truncado (política 'fail')."""
    pass


class _FileChangeHandler(FileSystemEventHandler):
    """Despierta al follower cuando cambia el archivo seguido."""

    def __init__(self, path: str, changed: Event):
        super().__init__()
        self._path = path
        self._changed = changed

    def on_any_event(self, event):
        if event.event_type not in _WATCHED_EVENTS:
            return
        paths = (event.src_path, getattr(event, "dest_path", None))
        if any(p is not None and os.path.abspath(os.fsdecode(p)) == self._path for p in paths):
            self._changed.set()


class LogFollower:
    """
    Sigue un archivo de log y produce sus líneas nuevas.

    Usage:
        follower = LogFollower("/var/lib/unifi-video/logs/recording.log")
        follower.start()
        for line in follower.lines():
            ...
        follower.close()
    """

    def __init__(
        self,
        path: Union[str, Path],
        rotation: str = "reopen",
        encoding: str = "utf-8",
    ):
        if rotation not in ROTATION_POLICIES:
            raise ValueError(
                f"Invalid rotation policy '{rotation}'. Available: {', '.join(ROTATION_POLICIES)}"
            )
        codecs.lookup(encoding)  # LookupError al construir, no en la primera línea
        self.path = Path(os.path.abspath(path))
        self.rotation = rotation
        self.encoding = encoding

        self._file: Optional[BinaryIO] = None
        self._position = 0
        self._buffer = b""
        self._tail = b""
        self._observer = None
        self._changed = Event()
        self._stopping = Event()
        self._iterating = False
        self._missing = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Abre el archivo al final y arranca el observer.

        Raises:
            FileNotFoundError: si el archivo no existe
        """
        if not self.path.is_file():
            raise FileNotFoundError(f"Log file not found: {self.path}")

        self._open(seek_end=True)

        handler = _FileChangeHandler(str(self.path), self._changed)
        self._observer = Observer()
        self._observer.schedule(handler, str(self.path.parent), recursive=False)
        self._observer.start()

        logger.info(
            "👀 Siguiendo archivo de log",
            extra={
                "component": "follower",
                "event": "started",
                "path": str(self.path),
                "offset": self._position,
                "rotation": self.rotation,
            }
        )

    def stop(self) -> None:
        """Termina la secuencia de lines() (thread-safe, usable desde signal handlers)."""
        self._stopping.set()
        self._changed.set()

    def close(self) -> None:
        """Libera observer y archivo."""
        self.stop()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> 'LogFollower':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def lines(self) -> Iterator[str]:
        """
        Generador de líneas nuevas (sin terminador), en orden de archivo.

        Bloquea esperando cambios en el archivo. Solo puede iterarse una vez.
        """
        if self._iterating:
            raise RuntimeError("LogFollower.lines() is not restartable")
        self._iterating = True

        if self._file is None:
            self.start()

        return self._follow()

    def _follow(self) -> Iterator[str]:
        while not self._stopping.is_set():
            # clear antes de leer: un cambio durante la lectura deja el flag seteado
            self._changed.clear()

            rotation = yield from self._drain()
            if self._stopping.is_set():
                break

            if rotation is None:
                self._changed.wait()
            elif not self._handle_rotation(rotation):
                break
            elif rotation == "missing":
                self._changed.wait()

        logger.info(
            "⏹️ Seguimiento finalizado",
            extra={"component": "follower", "event": "stopped", "path": str(self.path)}
        )

    def _drain(self) -> Generator[str, None, Optional[str]]:
        """
        Lee hasta EOF y retorna la rotación pendiente (None si no hay).

        La rotación se verifica antes de cada lectura: un truncado nunca se lee
        desde el offset viejo. Un archivo reemplazado o borrado se lee hasta EOF
        antes de soltarlo.
        """
        while not self._stopping.is_set():
            rotation = self._detect_rotation()
            if rotation == "truncated":
                return rotation

            chunk = self._file.read(READ_CHUNK_SIZE)
            if not chunk:
                return rotation
            self._position += len(chunk)
            self._buffer += chunk
            self._tail = (self._tail + chunk)[-TAIL_FINGERPRINT_SIZE:]

            *complete, self._buffer = self._buffer.split(b"\n")
            for raw in complete:
                yield raw.rstrip(b"\r").decode(self.encoding, errors="replace")
        return None

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def _open(self, seek_end: bool) -> None:
        self._file = open(self.path, "rb")
        self._position = self._file.seek(0, os.SEEK_END) if seek_end else 0
        self._buffer = b""
        self._tail = self._read_at(max(0, self._position - TAIL_FINGERPRINT_SIZE), self._position)

    def _read_at(self, start: int, end: int) -> bytes:
        """Bytes [start, end) del archivo abierto, sin mover el offset de lectura."""
        if end <= start:
            return b""
        self._file.seek(start)
        data = self._file.read(end - start)
        self._file.seek(self._position)
        return data

    def _detect_rotation(self) -> Optional[str]:
        """'missing' | 'replaced' | 'truncated' | None"""
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return "missing"

        opened = os.fstat(self._file.fileno())
        if (on_disk.st_ino, on_disk.st_dev) != (opened.st_ino, opened.st_dev):
            return "replaced"
        if on_disk.st_size < self._position:
            return "truncated"
        # truncado y reescrito más allá del offset: los últimos bytes leídos cambiaron
        if self._tail and self._read_at(self._position - len(self._tail), self._position) != self._tail:
            return "truncated"
        return None

    def _handle_rotation(self, rotation: str) -> bool:
        """
        Aplica la política de rotación.

        Returns:
            False si la secuencia debe terminar
        """
        if rotation == "missing" and self._missing and self.rotation == "reopen":
            return True
        self._missing = rotation == "missing"

        logger.info(
            f"🔄 Archivo de log {rotation}",
            extra={
                "component": "follower",
                "event": f"log_{rotation}",
                "path": str(self.path),
                "policy": self.rotation,
                "offset": self._position,
                "discarded_partial_bytes": len(self._buffer),
            }
        )

        if self.rotation == "fail":
            raise LogRotatedError(f"Log file {rotation}: {self.path}")
        if self.rotation == "stop":
            return False

        if rotation == "truncated":
            self._file.seek(0)
            self._position = 0
            self._buffer = b""
            self._tail = b""
        elif rotation == "replaced":
            self._file.close()
            self._open(seek_end=False)
        # missing: esperar a que el recorder cree el archivo nuevo
        return True
