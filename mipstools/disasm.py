"""Disassembler for MIPS little-endian COFF executables."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from typing import TextIO

from mipstools.formats import CoffImage, FormatError, read_coff
from mipstools.isa import (
    NOP,
    BranchCondition,
    Opcode,
    Special,
    immed,
    off16,
    off26,
    opcode_name,
    rd,
    rs,
    rt,
    shamt,
    special_name,
    top4,
)
from mipstools.memory import Memory, MemoryAccessError

_MASK = 0xFFFFFFFF

REGISTER_NAMES = (
    "0", "r1", "r2", "r3", "r4", "r5", "r6", "r7", "r8", "r9",
    "r10", "r11", "r12", "r13", "r14", "r15", "r16", "r17", "r18", "r19",
    "r20", "r21", "r22", "r23", "r24", "r25", "r26", "r27", "gp", "sp",
    "r30", "r31",
)

# Sections loaded into memory, in load order.
LOADED_SECTIONS = (".text", ".rdata", ".data", ".sdata", ".sbss", ".bss")

_SHIFT_IMMEDIATE = {Special.SLL, Special.SRL, Special.SRA}
_SHIFT_VARIABLE = {Special.SLLV, Special.SRLV, Special.SRAV}
_SOURCE_ONLY = {Special.JR, Special.JALR, Special.MFLO, Special.MTLO}
_NO_OPERANDS = {Special.SYSCALL, Special.BREAK}
_DEST_ONLY = {Special.MFHI, Special.MTHI}
_MULDIV = {Special.MULT, Special.MULTU, Special.DIV, Special.DIVU}
_THREE_REGISTER = {
    Special.ADD, Special.ADDU, Special.SUB, Special.SUBU, Special.AND,
    Special.OR, Special.XOR, Special.NOR, Special.SLT, Special.SLTU,
}

_JUMPS = {Opcode.J, Opcode.JAL}
_BRANCHES = {Opcode.BEQ, Opcode.BNE}
_IMMEDIATE_ARITH = {
    Opcode.ADDI, Opcode.ADDIU, Opcode.SLTI, Opcode.SLTIU,
    Opcode.ANDI, Opcode.ORI, Opcode.XORI,
}
_LOAD_STORE = {
    Opcode.LB, Opcode.LH, Opcode.LWL, Opcode.LW, Opcode.LBU, Opcode.LHU,
    Opcode.LWR, Opcode.SB, Opcode.SH, Opcode.SWL, Opcode.SW, Opcode.SWR,
    Opcode.LWC0, Opcode.LWC1, Opcode.LWC2, Opcode.LWC3,
    Opcode.SWC0, Opcode.SWC1, Opcode.SWC2, Opcode.SWC3,
}


def _reg(number: int) -> str:
    return REGISTER_NAMES[number]


def _hex(value: int) -> str:
    return f"{value & _MASK:x}"


def _special_operands(function: int, instruction: int) -> str:
    if function in _SHIFT_IMMEDIATE:
        return f"{_reg(rd(instruction))},{_reg(rt(instruction))},0x{shamt(instruction):x}"
    if function in _SHIFT_VARIABLE:
        return f"{_reg(rd(instruction))},{_reg(rt(instruction))},{_reg(rs(instruction))}"
    if function in _SOURCE_ONLY:
        return _reg(rs(instruction))
    if function in _NO_OPERANDS:
        return ""
    if function in _DEST_ONLY:
        return _reg(rd(instruction))
    if function in _MULDIV:
        return f"{_reg(rs(instruction))},{_reg(rt(instruction))}"
    if function in _THREE_REGISTER:
        return f"{_reg(rd(instruction))},{_reg(rs(instruction))},{_reg(rt(instruction))}"
    return ""


def _normal_operands(opcode: int, instruction: int, pc: int) -> str:
    if opcode in _JUMPS:
        return f"{(top4(pc) | off26(instruction)) & _MASK:08x}"
    if opcode in _BRANCHES:
        target = (off16(instruction) + pc + 4) & _MASK
        return f"{_reg(rt(instruction))},{_reg(rs(instruction))},{target:08x}"
    if opcode in _IMMEDIATE_ARITH:
        return (
            f"{_reg(rt(instruction))},{_reg(rs(instruction))},"
            f"0x{_hex(immed(instruction))}"
        )
    if opcode == Opcode.LUI:
        return f"{_reg(rt(instruction))},0x{_hex(immed(instruction))}"
    if opcode in _LOAD_STORE:
        return (
            f"{_reg(rt(instruction))},0x{_hex(immed(instruction))}"
            f"({_reg(rs(instruction))})"
        )
    return ""


def _body(instruction: int, pc: int) -> str:
    opcode = instruction >> 26
    if instruction == NOP:
        return "nop"
    if opcode == Opcode.SPECIAL:
        function = instruction & 0x3F
        return f"{special_name(function)}\t{_special_operands(function, instruction)}"
    if opcode == Opcode.BCOND:
        try:
            name = BranchCondition(rt(instruction)).name.lower()
        except ValueError:
            name = "BCOND"
        target = (off16(instruction) + pc + 4) & _MASK
        return f"{name}\t{_reg(rs(instruction))},{target:08x}"
    return f"{opcode_name(opcode)}\t{_normal_operands(opcode, instruction, pc)}"


def format_instruction(instruction: int, pc: int, long_form: bool = True) -> str:
    """Render one instruction word found at ``pc`` as assembler text."""
    instruction &= _MASK
    pc &= _MASK
    prefix = f"{pc:08x}: {instruction:08x}  " if long_form else ""
    return f"{prefix}\t{_body(instruction, pc)}"


def load_program(path: str, memory: Memory, out: TextIO | None = None) -> CoffImage:
    """Load the sections of the COFF file at ``path`` into ``memory``.

    Missing sections are reported on ``out``; the parsed image is returned.
    """
    stream = sys.stdout if out is None else out
    with open(path, "rb") as handle:
        image = read_coff(handle)
    for name in LOADED_SECTIONS:
        section = image.section(name)
        if section is None:
            stream.write(f"{name[1:]} section header missing\n")
            continue
        if section.scnptr == 0:
            continue
        data = image.raw[section.scnptr : section.scnptr + section.size]
        if len(data) != section.size:
            raise FormatError("File is too short")
        memory.write_bytes(section.vaddr, data)
    return image


def disassemble(memory: Memory, start: int, size: int) -> Iterator[str]:
    """Yield one line of text per instruction word in ``size`` bytes from ``start``."""
    for pc in range(start, start + size, 4):
        yield format_instruction(memory.fetch(pc), pc)


def main(argv: list[str] | None = None) -> int:
    """Disassemble the text section of a COFF file (default ``a.out``)."""
    prog = "disasm"
    args = list(sys.argv[1:] if argv is None else argv)
    while args and args[0].startswith("-"):
        args.pop(0)
    filename = args[0] if args else "a.out"

    try:
        with open(filename, "rb"):
            pass
    except OSError:
        sys.stderr.write(f"{prog}: Could not open '{filename}'\n")
        return 0

    memory = Memory()
    try:
        image = load_program(filename, memory, sys.stdout)
    except FormatError as exc:
        sys.stderr.write(f"{prog}: {exc}\n")
        return 0
    except MemoryAccessError:
        sys.stdout.write("MEMSIZE too small. Fix and recompile.\n")
        return 1

    text = image.section(".text")
    size = text.size if text is not None else 0
    for line in disassemble(memory, memory.offset, size):
        sys.stdout.write(line + "\n")
    return 0