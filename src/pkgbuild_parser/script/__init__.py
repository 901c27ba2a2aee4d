"""Evaluator script generation."""

from .assembler import ScriptArtifact, ScriptAssembler, build
from .config import ScriptConfig

__all__ = ["ScriptArtifact", "ScriptAssembler", "ScriptConfig", "build"]
