"""MIPS little-endian COFF and NOFF object file structures."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, ClassVar

MIPSELMAGIC = 0x0162
OMAGIC = 0o407
SOMAGIC = 0x0701
NOFFMAGIC = 0xBADFAD


class FormatError(ValueError):
    """Raised when an object file is malformed."""


def _unpack(layout: struct.Struct, data: bytes) -> tuple:
    if len(data) < layout.size:
        raise FormatError("File is too short")
    return layout.unpack_from(data, 0)


@dataclass
class CoffFileHeader:
    """The COFF file header."""

    magic: int = MIPSELMAGIC
    num_sections: int = 0
    timestamp: int = 0
    symbol_pointer: int = 0
    num_symbols: int = 0
    optional_header_size: int = 0
    flags: int = 0

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<HHIIIHH")

    @classmethod
    def unpack(cls, data: bytes) -> CoffFileHeader:
        return cls(*_unpack(cls.LAYOUT, data))

    def pack(self) -> bytes:
        return self.LAYOUT.pack(
            self.magic,
            self.num_sections,
            self.timestamp,
            self.symbol_pointer,
            self.num_symbols,
            self.optional_header_size,
            self.flags,
        )


@dataclass
class AoutHeader:
    """The COFF optional (system) header."""

    magic: int = OMAGIC
    version_stamp: int = 0
    text_size: int = 0
    data_size: int = 0
    bss_size: int = 0
    entry: int = 0
    text_start: int = 0
    data_start: int = 0
    bss_start: int = 0
    gpr_mask: int = 0
    cpr_mask: tuple[int, int, int, int] = (0, 0, 0, 0)
    gp_value: int = 0

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<hh8I4II")

    @classmethod
    def unpack(cls, data: bytes) -> AoutHeader:
        values = _unpack(cls.LAYOUT, data)
        return cls(*values[:10], cpr_mask=tuple(values[10:14]), gp_value=values[14])

    def pack(self) -> bytes:
        return self.LAYOUT.pack(
            self.magic,
            self.version_stamp,
            self.text_size,
            self.data_size,
            self.bss_size,
            self.entry,
            self.text_start,
            self.data_start,
            self.bss_start,
            self.gpr_mask,
            *self.cpr_mask,
            self.gp_value,
        )


@dataclass
class SectionHeader:
    """A COFF section header."""

    name: str = ""
    paddr: int = 0
    vaddr: int = 0
    size: int = 0
    scnptr: int = 0
    relptr: int = 0
    lnnoptr: int = 0
    num_relocs: int = 0
    num_lnno: int = 0
    flags: int = 0

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<8s6IHHI")

    @classmethod
    def unpack(cls, data: bytes) -> SectionHeader:
        raw_name, *rest = _unpack(cls.LAYOUT, data)
        name = raw_name.split(b"\0", 1)[0].decode("latin-1")
        return cls(name, *rest)

    def pack(self) -> bytes:
        return self.LAYOUT.pack(
            self.name.encode("latin-1"),
            self.paddr,
            self.vaddr,
            self.size,
            self.scnptr,
            self.relptr,
            self.lnnoptr,
            self.num_relocs,
            self.num_lnno,
            self.flags,
        )


@dataclass
class CoffImage:
    """A parsed COFF file: headers plus the raw file contents."""

    file_header: CoffFileHeader
    aout_header: AoutHeader
    sections: list[SectionHeader]
    raw: bytes = b""

    def section(self, name: str) -> SectionHeader | None:
        """Return the first section called ``name``, or None."""
        return next((s for s in self.sections if s.name == name), None)


def read_coff(stream: BinaryIO) -> CoffImage:
    """Read and check a MIPS little-endian OMAGIC COFF file."""
    raw = stream.read()
    file_header = CoffFileHeader.unpack(raw)
    if file_header.magic != MIPSELMAGIC:
        raise FormatError("File is not a MIPSEL COFF file")
    offset = CoffFileHeader.LAYOUT.size
    aout_header = AoutHeader.unpack(raw[offset:])
    if aout_header.magic != OMAGIC:
        raise FormatError("File is not a OMAGIC file")
    offset += AoutHeader.LAYOUT.size
    width = SectionHeader.LAYOUT.size
    sections = [
        SectionHeader.unpack(raw[offset + i * width :])
        for i in range(file_header.num_sections)
    ]
    return CoffImage(file_header, aout_header, sections, raw)


@dataclass
class Segment:
    """Where a segment lives in the NOFF file and in virtual memory."""

    virtual_addr: int = 0
    in_file_addr: int = 0
    size: int = 0


@dataclass
class NoffHeader:
    """Header of a NOFF object file."""

    magic: int = NOFFMAGIC
    code: Segment = field(default_factory=Segment)
    init_data: Segment = field(default_factory=Segment)
    uninit_data: Segment = field(default_factory=Segment)

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<10i")

    def pack(self) -> bytes:
        segments = (self.code, self.init_data, self.uninit_data)
        return self.LAYOUT.pack(
            self.magic,
            *(
                value
                for seg in segments
                for value in (seg.virtual_addr, seg.in_file_addr, seg.size)
            ),
        )

    @classmethod
    def unpack(cls, data: bytes) -> NoffHeader:
        magic, *values = _unpack(cls.LAYOUT, data)
        if magic != NOFFMAGIC:
            raise FormatError("File is not a NOFF file")
        code, init_data, uninit_data = (
            Segment(*values[i : i + 3]) for i in range(0, 9, 3)
        )
        return cls(magic, code, init_data, uninit_data)