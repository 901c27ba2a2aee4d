"""Render a Recipe in makepkg's ``.SRCINFO`` layout."""

from __future__ import annotations

from .keys import ARCH_ANY, CHECKSUM_ALGORITHMS, checksum_key
from .models import CategorySet, Recipe

# Keys of the pkgbase section, in the order makepkg writes them
_BASE_KEYS = (
    "pkgdesc",
    "pkgver",
    "pkgrel",
    "epoch",
    "url",
    "install",
    "changelog",
    "arch",
    "groups",
    "license",
    "checkdepends",
    "makedepends",
    "depends",
    "optdepends",
    "provides",
    "conflicts",
    "replaces",
    "noextract",
    "options",
    "backup",
    "source",
    "validpgpkeys",
    *(checksum_key(alg) for alg in CHECKSUM_ALGORITHMS),
)

_PACKAGE_KEYS = (
    "pkgdesc",
    "url",
    "install",
    "changelog",
    "arch",
    "groups",
    "license",
    "checkdepends",
    "depends",
    "optdepends",
    "provides",
    "conflicts",
    "replaces",
    "options",
    "backup",
)

# Recipe attribute behind each non-category key
_ATTRIBUTES = {
    "pkgdesc": "description",
    "url": "url",
    "install": "install",
    "changelog": "changelog",
    "arch": "architectures",
    "groups": "groups",
    "license": "license",
    "noextract": "noextract",
    "options": "options",
    "backup": "backup",
    "validpgpkeys": "validpgpkeys",
}


def _lines(key: str, values: list[str] | str | None) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        values = [values] if values else []
    return [f"\t{key} = {value}" for value in values]


def _category_lines(
    key: str, category_sets: dict[str, CategorySet], architectures: list[str]
) -> list[str]:
    lines = []
    generic = category_sets.get(ARCH_ANY)
    if generic is not None:
        lines.extend(_lines(key, generic.get(key)))
    for arch in architectures:
        specific = category_sets.get(arch)
        if arch != ARCH_ANY and specific is not None:
            lines.extend(_lines(f"{key}_{arch}", specific.get(key)))
    return lines


def _base_section(recipe: Recipe) -> list[str]:
    lines = [f"pkgbase = {recipe.base}"]
    version = recipe.version
    for key in _BASE_KEYS:
        if key == "pkgver":
            lines.extend(_lines(key, version.pkgver))
        elif key == "pkgrel":
            lines.extend(_lines(key, version.pkgrel))
        elif key == "epoch":
            if version.epoch:
                lines.extend(_lines(key, str(version.epoch)))
        elif key in _ATTRIBUTES:
            lines.extend(_lines(key, getattr(recipe, _ATTRIBUTES[key])))
        else:
            lines.extend(_category_lines(key, recipe.category_sets, recipe.architectures))
    return lines


def _package_section(recipe: Recipe, name: str) -> list[str]:
    package = recipe.get_package(name)
    # Overridden lists are written even when empty so they clear the base value
    lines = [f"pkgname = {package.name}"]
    architectures = package.architectures or recipe.architectures
    for key in _PACKAGE_KEYS:
        if key in _ATTRIBUTES:
            value = getattr(package, _ATTRIBUTES[key])
            if value is not None and not value:
                lines.append(f"\t{key} = ")
            else:
                lines.extend(_lines(key, value))
        elif package.category_sets:
            lines.extend(_category_lines(key, package.category_sets, architectures))
    return lines


def render_srcinfo(recipe: Recipe) -> str:
    """Return the ``.SRCINFO`` text for ``recipe``."""
    sections = [_base_section(recipe)]
    sections.extend(_package_section(recipe, name) for name in recipe.package_names)
    return "\n\n".join("\n".join(section) for section in sections) + "\n"
