"""Little-endian byte-addressed memory for the simulated machine."""

from __future__ import annotations

MEMSIZE = 1 << 24
MEMORY_OFFSET = 0x10000000


class MemoryAccessError(IndexError):
    """Raised on an access outside the simulated memory."""


class Memory:
    """Main memory mapped at ``offset`` in the machine's address space."""

    def __init__(self, size: int = MEMSIZE, offset: int = MEMORY_OFFSET) -> None:
        if size <= 0:
            raise ValueError("memory size must be positive")
        self.size = size
        self.offset = offset
        self._data = bytearray(size)

    def _index(self, address: int, width: int) -> int:
        address &= 0xFFFFFFFF
        index = address - self.offset
        if index < 0 or index + width > self.size:
            raise MemoryAccessError(f"address 0x{address:08x} outside memory")
        return index

    def _load(self, address: int, width: int, signed: bool) -> int:
        index = self._index(address, width)
        return int.from_bytes(self._data[index : index + width], "little", signed=signed)

    def _put(self, address: int, width: int, value: int) -> None:
        index = self._index(address, width)
        mask = (1 << (8 * width)) - 1
        self._data[index : index + width] = (value & mask).to_bytes(width, "little")

    def fetch(self, address: int) -> int:
        """Load a signed 32-bit word."""
        return self._load(address, 4, True)

    def fetch_half(self, address: int) -> int:
        """Load a signed 16-bit half word."""
        return self._load(address, 2, True)

    def fetch_half_unsigned(self, address: int) -> int:
        """Load an unsigned 16-bit half word."""
        return self._load(address, 2, False)

    def fetch_byte(self, address: int) -> int:
        """Load a signed byte."""
        return self._load(address, 1, True)

    def fetch_byte_unsigned(self, address: int) -> int:
        """Load an unsigned byte."""
        return self._load(address, 1, False)

    def store(self, address: int, value: int) -> None:
        """Store the low 32 bits of ``value``."""
        self._put(address, 4, value)

    def store_half(self, address: int, value: int) -> None:
        """Store the low 16 bits of ``value``."""
        self._put(address, 2, value)

    def store_byte(self, address: int, value: int) -> None:
        """Store the low 8 bits of ``value``."""
        self._put(address, 1, value)

    def read_bytes(self, address: int, count: int) -> bytes:
        """Copy ``count`` bytes out of memory."""
        if count < 0:
            raise ValueError("negative byte count")
        index = self._index(address, count)
        return bytes(self._data[index : index + count])

    def write_bytes(self, address: int, data: bytes) -> None:
        """Copy ``data`` into memory."""
        index = self._index(address, len(data))
        self._data[index : index + len(data)] = data

    def read_string(self, address: int) -> bytes:
        """Return the NUL-terminated byte string at ``address``."""
        index = self._index(address, 0)
        end = self._data.find(b"\0", index)
        if end == -1:
            raise MemoryAccessError(
                f"unterminated string at 0x{address & 0xFFFFFFFF:08x}"
            )
        return bytes(self._data[index:end])