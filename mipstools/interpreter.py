"""An interpreter that runs MIPS little-endian executables in simulated memory."""

from __future__ import annotations

import math
import mmap
import os
import sys
from typing import TextIO

from mipstools.disasm import format_instruction, load_program
from mipstools.formats import FormatError
from mipstools.isa import BranchCondition, Opcode, Special, immed, rd, rs, rt, shamt
from mipstools.memory import Memory, MemoryAccessError

_MASK = 0xFFFFFFFF

# Host system call numbers understood by the trap handler.
SYS_EXIT = 1
SYS_READ = 3
SYS_WRITE = 4
SYS_OPEN = 5
SYS_CLOSE = 6
SYS_SBREAK = 17
SYS_LSEEK = 19
SYS_IOCTL = 54
SYS_FSTAT = 62
SYS_GETPAGESIZE = 64

_BREAK_GRANULE = 8192
_ARGUMENT_AREA = 1024

_COPROCESSOR_OPS = {
    Opcode.LWC0, Opcode.LWC1, Opcode.LWC2, Opcode.LWC3,
    Opcode.SWC0, Opcode.SWC1, Opcode.SWC2, Opcode.SWC3,
    Opcode.COP0, Opcode.COP1, Opcode.COP2, Opcode.COP3,
}


def _s32(value: int) -> int:
    value &= _MASK
    return value - (1 << 32) if value & 0x80000000 else value


def _u32(value: int) -> int:
    return value & _MASK


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


class ProgramExit(Exception):
    """Raised when the simulated program asks to exit."""

    def __init__(self, status: int) -> None:
        super().__init__(f"program exited with status {status}")
        self.status = status


class MachineError(RuntimeError):
    """Raised when the simulated machine cannot go on."""

    def __init__(self, message: str, status: int = 2) -> None:
        super().__init__(message)
        self.status = status


def ilog2(value: int) -> int:
    """Number of bits needed to hold ``value`` taken as an unsigned 32-bit word."""
    return (value & _MASK).bit_length()


class Machine:
    """A MIPS processor with 32 general registers, HI and LO."""

    def __init__(
        self,
        memory: Memory | None = None,
        trace: bool = False,
        trap_trace: bool = False,
        reg_trace: bool = False,
        out: TextIO | None = None,
    ) -> None:
        self.memory = Memory() if memory is None else memory
        self.trace = trace
        self.trap_trace = trap_trace
        self.reg_trace = reg_trace
        self.out = out
        self.registers = [0] * 32
        self.hi = 0
        self.lo = 0
        self.pc = self.memory.offset
        self.npc = self.pc + 4
        self.instructions = 0

    @property
    def _stream(self) -> TextIO:
        return sys.stdout if self.out is None else self.out

    def _fail(self, message: str) -> MachineError:
        self._stream.write(message + "\n")
        return MachineError(message)

    def setup_arguments(self, argv: list[str] | tuple[str, ...]) -> int:
        """Place argc and argv below the top of memory; return the stack pointer."""
        sp = self.memory.offset + self.memory.size - _ARGUMENT_AREA
        self.registers[29] = _s32(sp)
        self.memory.store(sp, len(argv))
        pointer_slot = sp + 4
        string_at = pointer_slot + 32
        for arg in argv:
            data = arg.encode() if isinstance(arg, str) else bytes(arg)
            self.memory.write_bytes(string_at, data + b"\0")
            self.memory.store(pointer_slot, string_at)
            pointer_slot += 4
            string_at += len(data) + 1
        return sp

    def run(self, start_pc: int | None = None, argv: list[str] | tuple[str, ...] = ()) -> int:
        """Run from ``start_pc`` until the program exits; return its exit status."""
        start = self.memory.offset if start_pc is None else start_pc
        self.setup_arguments(argv)
        self.pc = _u32(start)
        self.npc = _u32(start + 4)
        try:
            while True:
                self.step()
        except ProgramExit as done:
            return done.status

    def step(self) -> int:
        """Execute one instruction (honouring the branch delay slot); return it."""
        xpc = self.pc
        self.pc = self.npc
        self.npc = _u32(self.pc + 4)
        instruction = self.memory.fetch(xpc) & _MASK
        self.instructions += 1
        self.registers[0] = 0
        if instruction != 0:
            self._execute(instruction, xpc)
        if self.trace:
            self._stream.write(format_instruction(instruction, xpc) + "\n")
            if self.reg_trace:
                self.dump_registers()
        return instruction

    def _execute(self, instruction: int, xpc: int) -> None:
        opcode = (instruction >> 26) & 0x3F
        if opcode == Opcode.SPECIAL:
            self._special(instruction, xpc)
        elif opcode == Opcode.BCOND:
            self._bcond(instruction, xpc)
        else:
            self._normal(opcode, instruction, xpc)

    def _special(self, instruction: int, xpc: int) -> None:
        reg = self.registers
        function = instruction & 0x3F
        d = rd(instruction)
        a = reg[rs(instruction)]
        b = reg[rt(instruction)]
        if function == Special.SLL:
            reg[d] = _s32(b << shamt(instruction))
        elif function == Special.SRL:
            reg[d] = _s32(_u32(b) >> shamt(instruction))
        elif function == Special.SRA:
            reg[d] = b >> shamt(instruction)
        elif function == Special.SLLV:
            reg[d] = _s32(b << (a & 31))
        elif function == Special.SRLV:
            reg[d] = _s32(_u32(b) >> (a & 31))
        elif function == Special.SRAV:
            reg[d] = b >> (a & 31)
        elif function == Special.JR:
            self.npc = _u32(a)
        elif function == Special.JALR:
            self.npc = _u32(a)
            reg[d] = _s32(xpc + 8)
        elif function == Special.SYSCALL:
            self.system_trap()
        elif function == Special.BREAK:
            if self.trap_trace:
                self._stream.write("**breakpoint ")
            self.system_trap()
        elif function == Special.MFHI:
            reg[d] = self.hi
        elif function == Special.MTHI:
            self.hi = a
        elif function == Special.MFLO:
            reg[d] = self.lo
        elif function == Special.MTLO:
            self.lo = a
        elif function == Special.MULT:
            self._multiply(a, b, signed=True)
        elif function == Special.MULTU:
            self._multiply(a, b, signed=False)
        elif function in (Special.DIV, Special.DIVU):
            if function == Special.DIVU:
                a, b = _u32(a), _u32(b)
            if b == 0:
                raise self._fail("Division by zero")
            quotient = _trunc_div(a, b)
            self.lo = _s32(quotient)
            self.hi = _s32(a - quotient * b)
        elif function in (Special.ADD, Special.ADDU):
            reg[d] = _s32(a + b)
        elif function in (Special.SUB, Special.SUBU):
            reg[d] = _s32(a - b)
        elif function == Special.AND:
            reg[d] = a & b
        elif function == Special.OR:
            reg[d] = a | b
        elif function == Special.XOR:
            reg[d] = a ^ b
        elif function == Special.NOR:
            reg[d] = ~(a | b)
        elif function == Special.SLT:
            reg[d] = int(a < b)
        elif function == Special.SLTU:
            reg[d] = int(_u32(a) < _u32(b))
        else:
            raise self._fail("Unimplemented Instruction")

    def _multiply(self, t1: int, t2: int, signed: bool) -> None:
        negative = False
        if signed:
            if t1 < 0:
                t1 = _s32(-t1)
                negative = not negative
            if t2 < 0:
                t2 = _s32(-t2)
                negative = not negative
        lo = _s32(t1 * t2)
        t1l, t1h = t1 & 0xFFFF, (t1 >> 16) & 0xFFFF
        t2l, t2h = t2 & 0xFFFF, (t2 >> 16) & 0xFFFF
        hi = _s32(_s32(t1h * t2h) + (_s32(t1h * t2l) >> 16) + (_s32(t2h * t1l) >> 16))
        if negative:
            lo = _s32(~lo + 1)
            hi = ~hi
            if lo == 0:
                hi = _s32(hi + 1)
        self.lo = lo
        self.hi = hi

    def _bcond(self, instruction: int, xpc: int) -> None:
        reg = self.registers
        condition = rt(instruction)
        target = _u32(xpc + 4 + (immed(instruction) << 2))
        if condition in (BranchCondition.BLTZAL, BranchCondition.BGEZAL):
            reg[31] = _s32(xpc + 8)
        value = reg[rs(instruction)]
        if condition in (BranchCondition.BLTZ, BranchCondition.BLTZAL):
            taken = value < 0
        elif condition in (BranchCondition.BGEZ, BranchCondition.BGEZAL):
            taken = value >= 0
        else:
            raise self._fail("Unimplemented Instruction")
        if taken:
            self.npc = target

    def _normal(self, opcode: int, instruction: int, xpc: int) -> None:
        reg = self.registers
        memory = self.memory
        t = rt(instruction)
        a = reg[rs(instruction)]
        imm = immed(instruction)
        target = _u32(xpc + 4 + (imm << 2))
        address = _u32(a + imm)

        if opcode in (Opcode.J, Opcode.JAL):
            if opcode == Opcode.JAL:
                reg[31] = _s32(xpc + 8)
            self.npc = (xpc & 0xF0000000) | ((instruction & 0x03FFFFFF) << 2)
        elif opcode == Opcode.BEQ:
            if a == reg[t]:
                self.npc = target
        elif opcode == Opcode.BNE:
            if a != reg[t]:
                self.npc = target
        elif opcode == Opcode.BLEZ:
            if a <= 0:
                self.npc = target
        elif opcode == Opcode.BGTZ:
            if a > 0:
                self.npc = target
        elif opcode in (Opcode.ADDI, Opcode.ADDIU):
            reg[t] = _s32(a + imm)
        elif opcode == Opcode.SLTI:
            reg[t] = int(a < imm)
        elif opcode == Opcode.SLTIU:
            reg[t] = int(_u32(a) < _u32(imm))
        elif opcode == Opcode.ANDI:
            reg[t] = a & imm
        elif opcode == Opcode.ORI:
            reg[t] = a | imm
        elif opcode == Opcode.XORI:
            reg[t] = a ^ imm
        elif opcode == Opcode.LUI:
            reg[t] = _s32(instruction << 16)
        elif opcode == Opcode.LB:
            reg[t] = memory.fetch_byte(address)
        elif opcode == Opcode.LH:
            reg[t] = memory.fetch_half(address)
        elif opcode == Opcode.LW:
            reg[t] = memory.fetch(address)
        elif opcode == Opcode.LBU:
            reg[t] = memory.fetch_byte_unsigned(address)
        elif opcode == Opcode.LHU:
            reg[t] = memory.fetch_half_unsigned(address)
        elif opcode == Opcode.LWL:
            i = _s32(a + imm)
            word = memory.fetch(i & ~3)
            reg[t] = _s32(reg[t] | (word << (8 * (i & 3))))
        elif opcode == Opcode.LWR:
            i = _s32(a + imm)
            value = reg[t] & (-1 << (8 * (i & 3)))
            if i & 3 == 0:
                value = 0
            value |= memory.fetch(i & ~3) >> (8 * ((-i) & 3))
            reg[t] = _s32(value)
        elif opcode == Opcode.SB:
            memory.store_byte(address, reg[t])
        elif opcode == Opcode.SH:
            memory.store_half(address, reg[t])
        elif opcode == Opcode.SW:
            memory.store(address, reg[t])
        elif opcode in (Opcode.SWL, Opcode.SWR):
            sys.stderr.write(f"sorry, no {Opcode(opcode).name} yet.\n")
            raise self._fail("Unimplemented Instruction")
        elif opcode in _COPROCESSOR_OPS:
            sys.stderr.write("Sorry, no coprocessors.\n")
            raise MachineError("Sorry, no coprocessors.")
        else:
            raise self._fail("Unimplemented Instruction")

    def system_trap(self) -> None:
        """Carry out the system call whose number is in r2."""
        reg = self.registers
        stream = self._stream
        if self.trap_trace:
            stream.write(f"**System call {reg[2]}\n")
            self.dump_registers()

        number = reg[2]
        o0, o1, o2 = reg[4], reg[5], reg[6]
        if number == SYS_EXIT:
            stream.flush()
            raise ProgramExit(0)
        if number == SYS_READ:
            reg[1] = self._sys_read(o0, o1, o2)
        elif number == SYS_WRITE:
            reg[1] = self._sys_write(o0, o1, o2)
        elif number == SYS_OPEN:
            reg[1] = self._sys_open(o0, o1, o2)
        elif number == SYS_CLOSE:
            reg[1] = 0
        elif number == SYS_SBREAK:
            reg[1] = _s32((_trunc_div(o0, _BREAK_GRANULE) + 1) * _BREAK_GRANULE)
        elif number == SYS_LSEEK:
            try:
                reg[1] = _s32(os.lseek(o0, o1, o2))
            except (OSError, ValueError):
                reg[1] = -1
        elif number == SYS_IOCTL:
            # Terminal controls have no effect on the simulated program; report success.
            reg[1] = 0
        elif number == SYS_FSTAT:
            try:
                os.fstat(o1)
                reg[1] = 0
            except (OSError, ValueError):
                reg[1] = -1
        elif number == SYS_GETPAGESIZE:
            reg[1] = mmap.PAGESIZE
        else:
            message = f"Unknown System call {number}"
            stream.write(message + "\n")
            if not self.trap_trace:
                self.dump_registers()
            raise MachineError(message)

        if self.trap_trace:
            stream.write("**Afterwards:\n")
            self.dump_registers()

    def _sys_read(self, fd: int, address: int, count: int) -> int:
        if count < 0:
            return -1
        try:
            data = os.read(fd, count)
        except OSError:
            return -1
        self.memory.write_bytes(address, data)
        return len(data)

    def _sys_write(self, fd: int, address: int, count: int) -> int:
        if count < 0:
            return -1
        data = self.memory.read_bytes(address, count)
        if fd == 1:
            self._stream.write(data.decode("latin-1"))
            return len(data)
        if fd == 2:
            sys.stderr.write(data.decode("latin-1"))
            return len(data)
        try:
            return os.write(fd, data)
        except OSError:
            return -1

    def _sys_open(self, address: int, flags: int, mode: int) -> int:
        path = self.memory.read_string(address)
        try:
            return os.open(path, flags, mode)
        except (OSError, ValueError):
            return -1

    def dump_registers(self) -> str:
        """Write all general registers, eight to a line, and return the text."""
        lines = []
        for base in range(0, 32, 8):
            values = "".join(f" {value & _MASK:08x}" for value in self.registers[base : base + 8])
            lines.append(f"{base:2d}:{values}\n")
        text = "".join(lines)
        self._stream.write(text)
        return text


def main(argv: list[str] | None = None) -> int:
    """Load a COFF executable (default ``a.out``) and run it."""
    prog = "mipsrun"
    args = list(sys.argv[1:] if argv is None else argv)
    trace = trap_trace = reg_trace = False
    while args and args[0].startswith("-"):
        for flag in args.pop(0)[1:]:
            if flag == "t":
                trace = True
            elif flag == "T":
                trap_trace = True
            elif flag == "r":
                reg_trace = True
            elif flag == "m":
                # Cache geometry (rows, associativity, line size, policy) is
                # accepted for compatibility; no cache is simulated.
                if len(args) < 4:
                    sys.stderr.write(f"{prog}: -m needs four arguments\n")
                    return 1
                del args[:4]

    filename = args[0] if args else "a.out"
    try:
        with open(filename, "rb"):
            pass
    except OSError:
        sys.stderr.write(f"{prog}: Could not open '{filename}'\n")
        return 0

    memory = Memory()
    try:
        load_program(filename, memory, sys.stdout)
    except FormatError as exc:
        sys.stderr.write(f"{prog}: {exc}\n")
        return 0
    except MemoryAccessError:
        sys.stdout.write("MEMSIZE too small. Fix and recompile.\n")
        return 1

    machine = Machine(memory, trace=trace, trap_trace=trap_trace, reg_trace=reg_trace)
    guest_argv = args if args else ["a.out"]
    try:
        return machine.run(memory.offset, guest_argv)
    except MachineError as exc:
        return exc.status
    except MemoryAccessError as exc:
        sys.stderr.write(f"{prog}: {exc}\n")
        return 2