"""Markers and category keys of the evaluator line protocol.

The evaluator writes one record per recipe on stdout:

    PKGBUILD
    pkgbase:foo
    ...
    ARCH
    arch:any
    depends:bar
    END
    PACKAGE
    pkgname:foo
    PACKAGEARCH
    arch:any
    END
    END
    END

Markers are whole lines. Every other line is ``<key>:<value>``.
"""

from __future__ import annotations

from enum import Enum

ARCH_ANY = "any"
SEPARATOR = ":"


class Marker(str, Enum):
    """Literal section marker lines."""

    RECIPE = "PKGBUILD"
    ARCH = "ARCH"
    PACKAGE = "PACKAGE"
    PACKAGE_ARCH = "PACKAGEARCH"
    END = "END"


MARKERS = frozenset(marker.value for marker in Marker)

# Checksum algorithms in makepkg's order; the array name is "<alg>sums"
CHECKSUM_ALGORITHMS = ("ck", "md5", "sha1", "sha224", "sha256", "sha384", "sha512", "b2")

DEPENDENCY_CATEGORIES = (
    "depends",
    "makedepends",
    "checkdepends",
    "optdepends",
    "conflicts",
    "provides",
    "replaces",
)

# Only these may be overridden inside package_*() functions
PACKAGE_DEPENDENCY_CATEGORIES = (
    "checkdepends",
    "depends",
    "optdepends",
    "provides",
    "conflicts",
    "replaces",
)

OPTIONAL_DEPENDENCY_CATEGORIES = ("optdepends", "checkdepends")

RECIPE_SCALARS = (
    "pkgbase",
    "pkgver",
    "pkgrel",
    "epoch",
    "pkgdesc",
    "url",
    "install",
    "changelog",
)
RECIPE_LISTS = ("license", "validpgpkeys", "noextract", "groups", "backup", "options")

PACKAGE_SCALARS = ("pkgdesc", "url", "install", "changelog")
PACKAGE_LISTS = ("license", "groups", "backup", "options")

# Header-only bookkeeping keys
KEY_ARCH = "arch"
KEY_PKGNAME = "pkgname"
KEY_PKGVER_FUNC = "pkgver_func"
KEY_FAILURE = "failure"
KEY_ERROR = "error"
KEY_SOURCE = "source"


def checksum_key(algorithm: str) -> str:
    """Protocol key (and recipe array name) for a checksum algorithm."""
    return f"{algorithm}sums"


CHECKSUM_KEYS = {checksum_key(alg): alg for alg in CHECKSUM_ALGORITHMS}
