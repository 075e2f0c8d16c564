"""MIPS instruction encodings, field extraction and mnemonic tables."""

from __future__ import annotations

from enum import IntEnum


class Opcode(IntEnum):
    """Primary opcodes (bits 31..26)."""

    SPECIAL = 0o00
    BCOND = 0o01
    J = 0o02
    JAL = 0o03
    BEQ = 0o04
    BNE = 0o05
    BLEZ = 0o06
    BGTZ = 0o07
    ADDI = 0o10
    ADDIU = 0o11
    SLTI = 0o12
    SLTIU = 0o13
    ANDI = 0o14
    ORI = 0o15
    XORI = 0o16
    LUI = 0o17
    COP0 = 0o20
    COP1 = 0o21
    COP2 = 0o22
    COP3 = 0o23
    LB = 0o40
    LH = 0o41
    LWL = 0o42
    LW = 0o43
    LBU = 0o44
    LHU = 0o45
    LWR = 0o46
    SB = 0o50
    SH = 0o51
    SWL = 0o52
    SW = 0o53
    SWR = 0o56
    LWC0 = 0o60
    LWC1 = 0o61
    LWC2 = 0o62
    LWC3 = 0o63
    SWC0 = 0o70
    SWC1 = 0o71
    SWC2 = 0o72
    SWC3 = 0o73


class Special(IntEnum):
    """Function codes of SPECIAL instructions (bits 5..0)."""

    SLL = 0o00
    SRL = 0o02
    SRA = 0o03
    SLLV = 0o04
    SRLV = 0o06
    SRAV = 0o07
    JR = 0o10
    JALR = 0o11
    SYSCALL = 0o14
    BREAK = 0o15
    MFHI = 0o20
    MTHI = 0o21
    MFLO = 0o22
    MTLO = 0o23
    MULT = 0o30
    MULTU = 0o31
    DIV = 0o32
    DIVU = 0o33
    ADD = 0o40
    ADDU = 0o41
    SUB = 0o42
    SUBU = 0o43
    AND = 0o44
    OR = 0o45
    XOR = 0o46
    NOR = 0o47
    SLT = 0o52
    SLTU = 0o53


class BranchCondition(IntEnum):
    """BCOND variants, encoded in the rt field."""

    BLTZ = 0o00
    BGEZ = 0o01
    BLTZAL = 0o20
    BGEZAL = 0o21


NOP = 0


def _name_table(codes: type[IntEnum]) -> tuple[str, ...]:
    known = {member.value: member.name.lower() for member in codes}
    return tuple(known.get(code, f"{code:03o}") for code in range(64))


_OPCODE_NAMES = _name_table(Opcode)
_SPECIAL_NAMES = _name_table(Special)


def rd(instruction: int) -> int:
    """Destination register field."""
    return (instruction >> 11) & 0x1F


def rt(instruction: int) -> int:
    """Target register field."""
    return (instruction >> 16) & 0x1F


def rs(instruction: int) -> int:
    """Source register field."""
    return (instruction >> 21) & 0x1F


def shamt(instruction: int) -> int:
    """Shift amount field."""
    return (instruction >> 6) & 0x1F


def immed(instruction: int) -> int:
    """Sign-extended 16-bit immediate."""
    if instruction & 0x8000:
        return instruction | -0x8000
    return instruction & 0x7FFF


def off26(instruction: int) -> int:
    """26-bit jump target, shifted to a byte offset."""
    return (instruction & ((1 << 26) - 1)) << 2


def top4(address: int) -> int:
    """The top four bits of a 32-bit address."""
    return address & 0xF0000000


def off16(instruction: int) -> int:
    """Sign-extended 16-bit branch offset in bytes."""
    return immed(instruction) << 2


def extend(value: int, hibitmask: int) -> int:
    """Sign-extend ``value`` whose sign bit is ``hibitmask``."""
    if value & hibitmask:
        return value | -hibitmask
    return value


def opcode_name(opcode: int) -> str:
    """Mnemonic for a primary opcode."""
    if not 0 <= opcode < 64:
        raise ValueError(f"opcode out of range: {opcode}")
    return _OPCODE_NAMES[opcode]


def special_name(function: int) -> str:
    """Mnemonic for a SPECIAL function code."""
    if not 0 <= function < 64:
        raise ValueError(f"function code out of range: {function}")
    return _SPECIAL_NAMES[function]