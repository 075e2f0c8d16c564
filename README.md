# mipstools

A small toolkit for little-endian MIPS (MIPSEL) object files of the kind
a cross compiler produces for a teaching operating system:

- `mipstools.formats` reads and writes COFF headers and NOFF headers
- `mipstools.convert` turns a COFF executable into a NOFF file or a flat
  memory image
- `mipstools.disasm` formats instructions and disassembles a program's
  text section
- `mipstools.interpreter` runs a program on a simple MIPS interpreter with
  a handful of host-style system calls
- `mipstools.isa` holds the opcode tables and instruction field helpers
- `mipstools.memory` is the byte-addressed little-endian memory the
  disassembler and interpreter load programs into

It also holds two small data-structure examples: a list of integers that
grows at its front (`mipstools.intlist.IntList`) and array- and
list-backed stacks (`mipstools.stacks`).

There are no dependencies outside the standard library; Python 3.10 or
later is needed.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command-line tools

### coff2noff

```
coff2noff program.coff program.noff
```

Prints the number of sections and each section it handles. `.text`,
`.data`/`.rdata` and `.bss`/`.sbss` sections are recognised; empty
sections are skipped. It fails, with a message on standard error, exit
status 1 and the output file removed, on a file that is not a MIPSEL
OMAGIC COFF executable, on a file that is too short, on an unknown
section, when both `.data` and `.rdata` hold data, and when `.bss` and
`.sbss` are contiguous.

### coff2flat

```
coff2flat program.coff program.flat
```

Writes the contents of every section except `.bss` and `.sbss` one after
another, then pads the image so that a 1024-byte stack follows the highest
section end, ending in a zero word.

### mips-disasm

```
mips-disasm program.coff
```

Loads the program (default `a.out`) into memory, reports any of `.text`,
`.rdata`, `.data`, `.sdata`, `.sbss` and `.bss` that is missing, and prints
one line per word of the text section. Leading options are ignored.

### mips-run

```
mips-run -t program.coff arg1 arg2
```

Loads and runs the program (default `a.out`). `-t` prints every
instruction as it runs, `-r` adds a register dump to each traced line
(together with `-t`), and `-T` traces system calls. `-m` takes four
arguments that are accepted and ignored. The file name and the arguments
after it are placed in memory as the program's `argc`/`argv`. The exit
status is that of the program; an unimplemented instruction or unknown
system call ends the run with status 2.

### mips-stack-demo

```
mips-stack-demo [count]
```

Pushes `count` values (default 10) starting at 17 onto an `ArrayStack` and
a `ListStack`, then pops them all, printing each step; then fills an
`ArrayStack` with characters from `a`.

## Library use

Decoding instruction fields and naming opcodes:

```python
from mipstools.isa import rs, rt, immed, opcode_name

word = 0x2408FFFF          # addiu r8, 0, -1
opcode_name(word >> 26)    # 'addiu'
rt(word), rs(word)         # (8, 0)
immed(word)                # -1
```

Formatting instructions:

```python
from mipstools.disasm import format_instruction

format_instruction(0x00000000, 0x10000000, False)   # '\tnop'
format_instruction(0x00000000, 0x10000000)          # '10000000: 00000000  \tnop'
```

Reading a COFF file:

```python
from mipstools.formats import read_coff

with open("program.coff", "rb") as stream:
    image = read_coff(stream)
text = image.section(".text")   # a SectionHeader, or None
```

`read_coff` raises `FormatError` on malformed files. `NoffHeader.pack()`
and `NoffHeader.unpack()` write and read the ten-word NOFF header.

Converting in code:

```python
import sys
from mipstools.convert import coff_to_noff, ConversionError

try:
    header = coff_to_noff("program.coff", "program.noff", sys.stdout)
except ConversionError as error:
    print(error)
```

`coff_to_flat(source, destination, out)` returns the size of the image it
wrote.

Running a program:

```python
from mipstools.disasm import load_program
from mipstools.interpreter import Machine
from mipstools.memory import Memory

memory = Memory(1 << 24, 0x10000000)
load_program("program.coff", memory)
machine = Machine(memory)
status = machine.run(0x10000000, ["program.coff"])
```

`Machine.step()` executes one instruction, honouring the branch delay
slot, and `Machine.dump_registers()` writes and returns the register dump.
Out-of-range memory accesses raise `MemoryAccessError`.

The stacks share one interface. `ArrayStack` has a fixed capacity and
raises `StackOverflow` when pushed full; both kinds raise `StackUnderflow`
when popped empty:

```python
from mipstools.stacks import ArrayStack

stack = ArrayStack(2)
stack.push(1)
stack.push(2)
stack.full()    # True
stack.pop()     # 2
```

## What it does not do

- The interpreter's system calls are host-style (exit, read, write, open,
  close, break, lseek, ioctl, fstat, getpagesize). The exit call always
  reports status 0. It has no calls for halting a simulated machine or for
  starting, joining or forking processes, so programs written against such
  an operating-system interface do not run on it.
- `SWL`, `SWR` and coprocessor instructions are not executed, and no cache
  is simulated.
- There is no simulated disk or file system.