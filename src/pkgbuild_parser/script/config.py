"""Configuration for the generated evaluator script."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any

from ..errors import ConfigError
from ..keys import CHECKSUM_ALGORITHMS, DEPENDENCY_CATEGORIES, OPTIONAL_DEPENDENCY_CATEGORIES

DEFAULT_LIBRARY = "/usr/share/makepkg"
DEFAULT_MAKEPKG_CONFIG = "/etc/makepkg.conf"


@dataclass(frozen=True)
class ScriptConfig:
    """What the evaluator script extracts and where it finds makepkg.

    The dataclass defaults never look at the environment. Use
    ``ScriptConfig.from_env()`` to honour ``LIBRARY`` and ``MAKEPKG_CONF``
    the way makepkg does.
    """

    # makepkg support library directory; must provide util.sh
    library: str = DEFAULT_LIBRARY
    makepkg_config: str = DEFAULT_MAKEPKG_CONFIG

    checksums: tuple[str, ...] = CHECKSUM_ALGORITHMS
    categories: tuple[str, ...] = DEPENDENCY_CATEGORIES
    pkgver_func: bool = True
    optional_depends: bool = True
    sources: bool = True
    # Emit per-architecture sections for arch-suffixed arrays
    arch_specific: bool = True

    # Script location; None writes a self-deleting temporary file
    destination: str | None = None

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, **overrides: Any) -> ScriptConfig:
        """Build a config from ``LIBRARY``/``MAKEPKG_CONF``, then apply overrides."""
        source = os.environ if env is None else env
        config = cls(
            library=source.get("LIBRARY") or DEFAULT_LIBRARY,
            makepkg_config=source.get("MAKEPKG_CONF") or DEFAULT_MAKEPKG_CONFIG,
        )
        return replace(config, **overrides)

    def resolved_categories(self) -> tuple[str, ...]:
        """Dependency categories the script will emit, in protocol order."""
        return tuple(
            category
            for category in DEPENDENCY_CATEGORIES
            if category in self.categories
            and (self.optional_depends or category not in OPTIONAL_DEPENDENCY_CATEGORIES)
        )

    def resolved_checksums(self) -> tuple[str, ...]:
        return tuple(alg for alg in CHECKSUM_ALGORITHMS if alg in self.checksums)

    def validate(self) -> None:
        """Reject structurally invalid configurations.

        Paths are not checked for existence; the evaluator reports a
        missing library or config when it starts.

        Raises:
            ConfigError: If the configuration cannot produce a usable script
        """
        if not self.library:
            raise ConfigError("library path must not be empty")
        if not self.makepkg_config:
            raise ConfigError("makepkg_config path must not be empty")

        unknown = sorted(set(self.checksums) - set(CHECKSUM_ALGORITHMS))
        if unknown:
            raise ConfigError(f"Unknown checksum algorithm(s): {', '.join(unknown)}")
        unknown = sorted(set(self.categories) - set(DEPENDENCY_CATEGORIES))
        if unknown:
            raise ConfigError(f"Unknown dependency categor(ies): {', '.join(unknown)}")

        if not self.resolved_categories():
            raise ConfigError("No dependency category left to extract")
