"""Context assembly (the unconscious pass before each reply)."""

from companion.context.assembler import ContextAssembler

__all__ = ["ContextAssembler"]
