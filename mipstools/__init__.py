"""Little-endian MIPS tools: object formats, conversion, disassembly, interpretation and stack examples."""

__version__ = "0.1.0"
__all__ = ["intlist", "isa", "formats", "memory", "stacks", "disasm", "convert", "interpreter"]