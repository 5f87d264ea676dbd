"""Serial number sequence shared by every certificate the root CA signs."""

import asyncio
import logging
from pathlib import Path

from .cert_utils import generate_serial_number, write_file_atomic
from .errors import StateError

logger = logging.getLogger(__name__)


class SerialCounter:
    """Hex serial file in OpenSSL ``.srl`` format, guarded by a lock.

    The first allocation seeds the sequence with a random 128-bit value;
    every later allocation increments the stored value.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    def current(self) -> int | None:
        """Return the last allocated serial, or None if nothing was allocated yet.

        Raises:
            StateError: If the serial file does not hold a hex number
        """
        if not self.path.is_file():
            return None
        text = self.path.read_text().strip()
        if not text:
            return None
        try:
            return int(text, 16)
        except ValueError as e:
            raise StateError(f"corrupt serial file {self.path}: {text!r}") from e

    async def next_serial(self) -> int:
        async with self._lock:
            current = self.current()
            serial = generate_serial_number() if current is None else current + 1
            write_file_atomic(self.path, f"{serial:X}\n".encode())
            logger.debug("Allocated serial %X", serial)
            return serial
