from __future__ import annotations

import codecs
import logging
from typing import Any, Optional, Tuple

try:
    import serial  # type: ignore[import]
except ImportError:  # pragma: no cover - reported as a missing capability at open()
    serial = None  # type: ignore[assignment]

from .config import LinkConfig

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the link cannot be opened or drops while reading."""


class SerialUnavailableError(TransportError):
    """Raised when serial access is not supported by the host environment."""


class SerialTransport:
    """pyserial-backed transport yielding decoded text chunks."""

    def __init__(self, port: str, link: Optional[LinkConfig] = None, chunk_size: int = 256) -> None:
        self.port = port
        self.link = link or LinkConfig()
        self.chunk_size = max(chunk_size, 1)
        self._handle: Any = None
        self._released = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="ignore")

    @property
    def description(self) -> str:
        return f"{self.port} @ {self.link.baudrate} baud"

    def open(self) -> None:
        if serial is None:
            raise SerialUnavailableError("pyserial is required but not installed. Install extra 'serial'.")
        try:
            self._handle = serial.Serial(
                port=self.port,
                baudrate=self.link.baudrate,
                bytesize=self.link.bytesize,
                parity=self.link.parity,
                stopbits=self.link.stopbits,
                rtscts=self.link.rtscts,
                xonxoff=self.link.xonxoff,
                timeout=self.link.timeout,
            )
        except (serial.SerialException, OSError) as exc:
            raise TransportError(str(exc)) from exc
        self._released = False
        self._decoder.reset()
        logger.debug("Opened %s", self.description)

    def read(self) -> Tuple[str, bool]:
        if self._handle is None:
            raise TransportError("transport is not open")
        try:
            waiting = getattr(self._handle, "in_waiting", 0) or 1
            data = self._handle.read(min(waiting, self.chunk_size))
        except (serial.SerialException, OSError) as exc:
            raise TransportError(str(exc)) from exc
        if not data:
            # read timeout, the link is still up
            return "", False
        return self._decoder.decode(data), False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except Exception as exc:
            logger.debug("Error while closing %s: %s", self.port, exc)


class StreamTransport:
    """Replays text from an already open stream (stdin or a capture file)."""

    def __init__(self, handle: Any, chunk_size: int = 256, close_on_release: bool = False, name: str = "stream") -> None:
        self._handle = handle
        self.chunk_size = max(chunk_size, 1)
        self._close_on_release = close_on_release
        self._released = False
        self._name = name
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="ignore")

    @property
    def description(self) -> str:
        return self._name

    def open(self) -> None:
        if self._handle is None:
            raise TransportError(f"{self._name} is not available")
        self._decoder.reset()

    def read(self) -> Tuple[str, bool]:
        if self._handle is None:
            raise TransportError(f"{self._name} already released")
        try:
            chunk = self._handle.read(self.chunk_size)
        except OSError as exc:
            raise TransportError(str(exc)) from exc
        if not chunk:
            return self._decoder.decode(b"", final=True), True
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        return chunk, False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        handle, self._handle = self._handle, None
        if handle is not None and self._close_on_release:
            try:
                handle.close()
            except Exception as exc:
                logger.debug("Error while closing %s: %s", self._name, exc)
