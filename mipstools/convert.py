"""Convert MIPS COFF executables to NOFF files and to flat memory images."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from mipstools.formats import (
    CoffImage,
    FormatError,
    NoffHeader,
    SectionHeader,
    Segment,
    read_coff,
)

STACK_SIZE = 1024


class ConversionError(Exception):
    """Raised when a COFF file cannot be converted."""


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _read_image(source: str | Path) -> CoffImage:
    with open(source, "rb") as stream:
        try:
            return read_coff(stream)
        except FormatError as exc:
            raise ConversionError(str(exc)) from exc


def _section_data(image: CoffImage, section: SectionHeader) -> bytes:
    data = image.raw[section.scnptr : section.scnptr + section.size]
    if len(data) != section.size:
        raise ConversionError("File is too short")
    return data


def _build_noff(image: CoffImage, stream: TextIO) -> tuple[NoffHeader, bytes]:
    sections = image.sections
    stream.write(f"numsections {len(sections)} \n")
    header = NoffHeader()
    body = bytearray()
    in_file = NoffHeader.LAYOUT.size
    stream.write(f"Loading {len(sections)} sections:\n")
    for section in sections:
        stream.write(
            f'\t"{section.name}", filepos 0x{section.scnptr}, '
            f"mempos 0x{section.paddr}, size 0x{section.size}\n"
        )
        paddr = _int32(section.paddr)
        size = _int32(section.size)
        if section.size == 0:
            continue
        if section.name == ".text":
            header.code = Segment(paddr, in_file, size)
            body += _section_data(image, section)
            in_file += section.size
        elif section.name in (".data", ".rdata"):
            if header.init_data.size != 0:
                raise ConversionError("Can't handle both data and rdata")
            header.init_data = Segment(paddr, in_file, size)
            body += _section_data(image, section)
            in_file += section.size
        elif section.name in (".bss", ".sbss"):
            uninit = header.uninit_data
            if uninit.size != 0:
                if paddr == uninit.virtual_addr + uninit.size:
                    raise ConversionError("Can't handle both bss and sbss")
                uninit.size += size
            else:
                header.uninit_data = Segment(paddr, 0, size)
        else:
            raise ConversionError(f"Unknown segment type: {section.name}")
    return header, bytes(body)


def coff_to_noff(
    source: str | Path, destination: str | Path, out: TextIO | None = None
) -> NoffHeader:
    """Write the NOFF form of the COFF file ``source`` to ``destination``.

    On a conversion error the destination file is removed.
    """
    stream = sys.stdout if out is None else out
    target = Path(destination)
    image = _read_image_keeping_target(source, target)
    try:
        header, body = _build_noff(image, stream)
    except ConversionError:
        target.unlink(missing_ok=True)
        raise
    target.write_bytes(header.pack() + body)
    return header


def _read_image_keeping_target(source: str | Path, target: Path) -> CoffImage:
    try:
        return _read_image(source)
    except ConversionError:
        target.unlink(missing_ok=True)
        raise


def coff_to_flat(
    source: str | Path, destination: str | Path, out: TextIO | None = None
) -> int:
    """Write a flat memory image of the COFF file ``source`` to ``destination``.

    Section contents are written one after another, followed by room for a
    stack ending in a zero word. Returns the size of the image in bytes.
    """
    stream = sys.stdout if out is None else out
    image = _read_image(source)
    stream.write(f"Loading {len(image.sections)} sections:\n")
    top = 0
    body = bytearray()
    for section in image.sections:
        stream.write(
            f'\t"{section.name}", filepos 0x{section.scnptr:x}, '
            f"mempos 0x{section.paddr:x}, size 0x{section.size:x}\n"
        )
        top = max(top, section.paddr + section.size)
        if section.name not in (".bss", ".sbss"):
            body += _section_data(image, section)
    stream.write(f"Adding stack of size: {STACK_SIZE}\n")
    end = top + STACK_SIZE
    if len(body) < end:
        body.extend(bytes(end - len(body)))
    body[end - 4 : end] = bytes(4)
    Path(destination).write_bytes(body)
    return len(body)


def _run(
    argv: list[str] | None,
    prog: str,
    output_label: str,
    convert: Callable[[str, str], object],
) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        sys.stderr.write(f"Usage: {prog} <coffFileName> <{output_label}>\n")
        return 1
    try:
        convert(args[0], args[1])
    except ConversionError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    except OSError as exc:
        name = exc.filename if exc.filename is not None else args[0]
        sys.stderr.write(f"{name}: {exc.strerror or exc}\n")
        return 1
    return 0


def main_noff(argv: list[str] | None = None) -> int:
    """Command: convert a COFF file to NOFF."""
    return _run(argv, "coff2noff", "noffFileName", coff_to_noff)


def main_flat(argv: list[str] | None = None) -> int:
    """Command: convert a COFF file to a flat image."""
    return _run(argv, "coff2flat", "flatFileName", coff_to_flat)