"""Extract structured metadata from PKGBUILD recipes by evaluating them with Bash.

Example:
    from pkgbuild_parser import parse_batch

    for result in parse_batch(["foo/PKGBUILD", "bar/PKGBUILD"]):
        if result.ok:
            print(result.recipe.base, result.recipe.version)
        else:
            print(result.error)
"""

from .deps import Dependency, DependencyOrder, Provide
from .errors import (
    AbortedError,
    BatchTimeoutError,
    ConfigError,
    LaunchError,
    ParseError,
    PkgbuildParserError,
    ProtocolError,
)
from .models import CategorySet, Package, Recipe, RecipeResult, ResolvedPackage, Version
from .process import ParserOptions, RecipeParser, SchedulingStrategy, parse_batch, parse_one
from .protocol import ProtocolDecoder, encode_recipe
from .script import ScriptArtifact, ScriptAssembler, ScriptConfig, build
from .sources import Source, SourceProtocol, SourceWithChecksums
from .srcinfo import render_srcinfo
from .version import Ordering, compare, vercmp, version_key

__version__ = "0.1.0"

__all__ = [
    "AbortedError",
    "BatchTimeoutError",
    "CategorySet",
    "ConfigError",
    "Dependency",
    "DependencyOrder",
    "LaunchError",
    "Ordering",
    "Package",
    "ParseError",
    "ParserOptions",
    "PkgbuildParserError",
    "ProtocolDecoder",
    "ProtocolError",
    "Provide",
    "Recipe",
    "RecipeParser",
    "RecipeResult",
    "ResolvedPackage",
    "SchedulingStrategy",
    "ScriptArtifact",
    "ScriptAssembler",
    "ScriptConfig",
    "Source",
    "SourceProtocol",
    "SourceWithChecksums",
    "Version",
    "build",
    "compare",
    "encode_recipe",
    "parse_batch",
    "parse_one",
    "render_srcinfo",
    "vercmp",
    "version_key",
]
