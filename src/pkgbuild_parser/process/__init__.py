"""Running the evaluator process and correlating its records with paths."""

from .options import ParserOptions, SchedulingStrategy
from .orchestrator import RecipeParser, parse_batch, parse_one

__all__ = ["ParserOptions", "RecipeParser", "SchedulingStrategy", "parse_batch", "parse_one"]
