import io
import math
import struct

import pytest

from mipstools.disasm import format_instruction
from mipstools.formats import AoutHeader, CoffFileHeader, SectionHeader
from mipstools.interpreter import Machine, MachineError, ilog2, main
from mipstools.isa import Opcode, Special
from mipstools.memory import Memory

OFFSET = 0x10000000
MASK = 0xFFFFFFFF


def i_type(op, rs_, rt_, imm):
    return (op << 26) | (rs_ << 21) | (rt_ << 16) | (imm & 0xFFFF)


def r_type(funct, rs_=0, rt_=0, rd_=0, sh=0):
    return (rs_ << 21) | (rt_ << 16) | (rd_ << 11) | (sh << 6) | funct


def addiu(t, s, imm):
    return i_type(Opcode.ADDIU, s, t, imm)


SYSCALL = r_type(Special.SYSCALL)
EXIT = [addiu(2, 0, 1), SYSCALL]


def code_bytes(words):
    return b"".join(struct.pack("<I", w & MASK) for w in words)


def make_machine(words, **kwargs):
    memory = Memory(size=0x10000)
    memory.write_bytes(OFFSET, code_bytes(words))
    out = io.StringIO()
    return Machine(memory, out=out, **kwargs), out


def test_add_then_exit():
    machine, _ = make_machine([addiu(8, 0, 30), addiu(9, 0, -4),
                               r_type(Special.ADDU, 8, 9, 10)] + EXIT)
    assert machine.run(OFFSET, ["prog"]) == 0
    assert machine.registers[10] == 30 + -4


def test_exit_status_ignores_argument():
    machine, _ = make_machine([addiu(4, 0, 3)] + EXIT)
    assert machine.run(OFFSET) == 0


def test_register_zero_is_forced():
    machine, _ = make_machine([addiu(0, 0, 5), r_type(Special.ADDU, 0, 0, 8)] + EXIT)
    machine.run(OFFSET)
    assert machine.registers[8] == 0


def test_setup_arguments_layout():
    machine, _ = make_machine(EXIT)
    sp = machine.setup_arguments(["prog", "arg1"])
    memory = machine.memory
    assert sp == OFFSET + memory.size - 1024
    assert machine.registers[29] == sp
    assert memory.fetch(sp) == 2
    first = memory.fetch(sp + 4)
    second = memory.fetch(sp + 8)
    assert memory.read_string(first) == b"prog"
    assert memory.read_string(second) == b"arg1"
    assert second == first + len("prog") + 1


def test_branch_delay_slot():
    words = [
        i_type(Opcode.BEQ, 0, 0, 2),
        addiu(8, 0, 5),
        addiu(9, 0, 7),
        addiu(10, 0, 9),
    ] + EXIT
    machine, _ = make_machine(words)
    machine.run(OFFSET)
    assert machine.registers[8] == 5
    assert machine.registers[9] == 0
    assert machine.registers[10] == 9


def test_jal_links_past_delay_slot():
    target = ((OFFSET + 12) >> 2) & 0x03FFFFFF
    words = [(Opcode.JAL << 26) | target, 0, addiu(9, 0, 7)] + EXIT
    machine, _ = make_machine(words)
    machine.run(OFFSET)
    assert machine.registers[31] == OFFSET + 8
    assert machine.registers[9] == 0


def test_signed_multiply():
    words = [addiu(8, 0, -6), addiu(9, 0, 7), r_type(Special.MULT, 8, 9),
             r_type(Special.MFLO, rd_=10), r_type(Special.MFHI, rd_=11)] + EXIT
    machine, _ = make_machine(words)
    machine.run(OFFSET)
    assert machine.registers[10] == -6 * 7
    assert machine.registers[11] == -1


def test_unsigned_multiply_carries_into_hi():
    words = [i_type(Opcode.LUI, 0, 8, 1), i_type(Opcode.LUI, 0, 9, 1),
             r_type(Special.MULTU, 8, 9)] + EXIT
    machine, _ = make_machine(words)
    machine.run(OFFSET)
    product = (machine.hi << 32) | (machine.lo & MASK)
    assert product == 0x10000 * 0x10000


def test_divide_truncates_toward_zero():
    words = [addiu(8, 0, -7), addiu(9, 0, 2), r_type(Special.DIV, 8, 9)] + EXIT
    machine, _ = make_machine(words)
    machine.run(OFFSET)
    assert machine.lo == math.trunc(-7 / 2)
    assert machine.hi == math.fmod(-7, 2)


def test_divide_by_zero_is_an_error():
    machine, _ = make_machine([addiu(8, 0, 1), r_type(Special.DIV, 8, 0)] + EXIT)
    with pytest.raises(MachineError):
        machine.run(OFFSET)


def test_shifts():
    words = [addiu(8, 0, -16),
             r_type(Special.SRA, rt_=8, rd_=9, sh=2),
             r_type(Special.SRL, rt_=8, rd_=10, sh=28),
             r_type(Special.SLL, rt_=8, rd_=11, sh=1)] + EXIT
    machine, _ = make_machine(words)
    machine.run(OFFSET)
    assert machine.registers[9] == -16 >> 2
    assert machine.registers[10] == ((-16) & MASK) >> 28
    assert machine.registers[11] == -32


def test_lui_and_load_store():
    words = [
        i_type(Opcode.LUI, 0, 8, 0x1000),
        addiu(9, 0, -2),
        i_type(Opcode.SW, 8, 9, 0x200),
        i_type(Opcode.LB, 8, 10, 0x200),
        i_type(Opcode.LBU, 8, 11, 0x200),
        i_type(Opcode.LW, 8, 12, 0x200),
    ] + EXIT
    machine, _ = make_machine(words)
    machine.run(OFFSET)
    assert machine.registers[8] == OFFSET
    assert machine.registers[10] == -2
    assert machine.registers[11] == 0xFE
    assert machine.registers[12] == -2


def test_write_system_call_goes_to_output():
    text = b"hi\n"
    words = [
        addiu(4, 0, 1),
        i_type(Opcode.LUI, 0, 5, 0x1000),
        i_type(Opcode.ORI, 5, 5, 0x100),
        addiu(6, 0, len(text)),
        addiu(2, 0, 4),
        SYSCALL,
    ] + EXIT
    machine, out = make_machine(words)
    machine.memory.write_bytes(OFFSET + 0x100, text)
    machine.run(OFFSET)
    assert out.getvalue() == "hi\n"
    assert machine.registers[1] == len(text)


def test_break_system_call_rounds_up():
    machine, _ = make_machine([addiu(4, 0, 10000), addiu(2, 0, 17), SYSCALL] + EXIT)
    machine.run(OFFSET)
    assert machine.registers[1] == 16384
    assert machine.registers[1] % 8192 == 0


def test_unknown_system_call():
    machine, out = make_machine([addiu(2, 0, 99), SYSCALL])
    with pytest.raises(MachineError) as info:
        machine.run(OFFSET)
    assert info.value.status == 2
    assert "Unknown System call 99" in out.getvalue()


def test_unimplemented_instruction():
    machine, out = make_machine([0xFC000000])
    with pytest.raises(MachineError) as info:
        machine.run(OFFSET)
    assert info.value.status == 2
    assert "Unimplemented Instruction" in out.getvalue()


def test_coprocessor_instruction_is_refused():
    machine, _ = make_machine([i_type(Opcode.COP1, 0, 0, 0)])
    with pytest.raises(MachineError, match="coprocessors"):
        machine.run(OFFSET)


def test_trap_trace_reports_call():
    machine, out = make_machine(EXIT, trap_trace=True)
    machine.run(OFFSET)
    assert "**System call 1\n" in out.getvalue()


def test_trace_prints_disassembly():
    machine, out = make_machine([addiu(8, 0, 5)] + EXIT, trace=True)
    machine.run(OFFSET)
    assert out.getvalue().startswith(format_instruction(addiu(8, 0, 5), OFFSET) + "\n")


def test_dump_registers_format():
    machine, out = make_machine(EXIT)
    machine.registers[9] = -1
    text = machine.dump_registers()
    lines = text.splitlines()
    assert len(lines) == 4
    assert [line[:3] for line in lines] == [" 0:", " 8:", "16:", "24:"]
    assert lines[1].split()[2] == "ffffffff"
    assert out.getvalue() == text


def test_ilog2():
    assert ilog2(0) == 0
    assert ilog2(1) == 1
    assert ilog2(-1) == 32
    for value in (2, 3, 5, 1000, 0x7FFFFFFF):
        n = ilog2(value)
        assert 2 ** (n - 1) <= value < 2 ** n


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "none"
    assert main([str(missing)]) == 0
    assert "Could not open" in capsys.readouterr().err


def _write_coff(path, words):
    code = code_bytes(words)
    file_header = CoffFileHeader(num_sections=1).pack()
    aout = AoutHeader().pack()
    start = len(file_header) + len(aout) + SectionHeader.LAYOUT.size
    section = SectionHeader(name=".text", paddr=OFFSET, vaddr=OFFSET,
                            size=len(code), scnptr=start).pack()
    path.write_bytes(file_header + aout + section + code)


def test_main_runs_program(tmp_path, capsys):
    program = tmp_path / "prog"
    _write_coff(program, EXIT)
    assert main([str(program)]) == 0
    assert "rdata section header missing" in capsys.readouterr().out


def test_main_reports_machine_error(tmp_path):
    program = tmp_path / "prog"
    _write_coff(program, [0xFC000000])
    assert main([str(program)]) == 2