import io

import pytest

from mipstools.formats import (
    MIPSELMAGIC,
    NOFFMAGIC,
    OMAGIC,
    AoutHeader,
    CoffFileHeader,
    FormatError,
    NoffHeader,
    SectionHeader,
    Segment,
    read_coff,
)


def _coff(sections, magic=MIPSELMAGIC, aout_magic=OMAGIC):
    head = CoffFileHeader(magic=magic, num_sections=len(sections)).pack()
    head += AoutHeader(magic=aout_magic).pack()
    head += b"".join(s.pack() for s in sections)
    return head


def test_header_sizes_match_mips_coff():
    assert len(CoffFileHeader().pack()) == 20
    assert len(SectionHeader().pack()) == 40
    assert len(AoutHeader().pack()) == 56


def test_file_header_wire_bytes_start_with_magic():
    assert CoffFileHeader().pack()[:2] == b"\x62\x01"


def test_file_header_round_trip():
    header = CoffFileHeader(MIPSELMAGIC, 3, 111, 222, 333, 56, 7)
    assert CoffFileHeader.unpack(header.pack()) == header


def test_aout_header_round_trip():
    header = AoutHeader(OMAGIC, 2, 100, 200, 300, 4, 5, 6, 7, 8, (1, 2, 3, 4), 9)
    assert AoutHeader.unpack(header.pack()) == header


def test_section_header_round_trip_and_name():
    header = SectionHeader(".text", 0x10, 0x10, 0x40, 0x90, 0, 0, 1, 2, 0x20)
    back = SectionHeader.unpack(header.pack())
    assert back == header
    assert back.name == ".text"


def test_unpack_too_short():
    with pytest.raises(FormatError, match="too short"):
        CoffFileHeader.unpack(b"\x62\x01")


def test_read_coff_parses_sections():
    sections = [
        SectionHeader(".text", size=8, scnptr=200),
        SectionHeader(".bss", paddr=64, size=16),
    ]
    data = _coff(sections)
    image = read_coff(io.BytesIO(data))
    assert image.file_header.num_sections == 2
    assert image.sections == sections
    assert image.section(".bss") == sections[1]
    assert image.section(".data") is None
    assert image.raw == data


def test_read_coff_bad_magic():
    with pytest.raises(FormatError, match="MIPSEL"):
        read_coff(io.BytesIO(_coff([], magic=0x0160)))


def test_read_coff_not_omagic():
    with pytest.raises(FormatError, match="OMAGIC"):
        read_coff(io.BytesIO(_coff([], aout_magic=0o410)))


def test_read_coff_truncated_sections():
    data = _coff([SectionHeader(".text")])
    with pytest.raises(FormatError):
        read_coff(io.BytesIO(data[:-4]))


def test_noff_header_round_trip():
    header = NoffHeader(
        code=Segment(0, 40, 128),
        init_data=Segment(128, 168, 32),
        uninit_data=Segment(160, 0, 64),
    )
    packed = header.pack()
    assert len(packed) == NoffHeader.LAYOUT.size
    assert NoffHeader.unpack(packed) == header


def test_noff_header_default_and_magic_bytes():
    header = NoffHeader()
    assert header.magic == NOFFMAGIC
    assert header.code.size == 0
    assert header.pack()[:4] == b"\xad\xdf\xba\x00"


def test_noff_header_rejects_wrong_magic():
    packed = bytearray(NoffHeader().pack())
    packed[0] ^= 0xFF
    with pytest.raises(FormatError):
        NoffHeader.unpack(bytes(packed))