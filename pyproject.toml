[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mipstools"
version = "0.1.0"
description = "Tools for little-endian MIPS object files: a COFF reader, NOFF and flat-image conversion, a disassembler and an instruction interpreter"
requires-python = ">=3.10"
dependencies = []
keywords = ["mips", "coff", "noff", "disassembler", "interpreter", "emulator", "object-file"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Disassemblers",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mips-run = "mipstools.interpreter:main"
mips-disasm = "mipstools.disasm:main"
coff2noff = "mipstools.convert:main_noff"
coff2flat = "mipstools.convert:main_flat"
mips-stack-demo = "mipstools.stacks:main"

[tool.hatch.build.targets.wheel]
packages = ["mipstools"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
