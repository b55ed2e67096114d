"""A RISC-V RV32IM instruction-set simulator with a built-in debugger."""

__version__ = "0.1.0"