"""Compiler back end for x86-64: machine IR, liveness, register and stack allocation, NASM output and runtime helpers."""

__version__ = "0.1.0"