"""Render a Recipe back into evaluator protocol lines.

The output is what the evaluator script would print for an equivalent
recipe, so ``ProtocolDecoder`` turns it back into an equal entity.
"""

from __future__ import annotations

from ..keys import (
    ARCH_ANY,
    KEY_ARCH,
    KEY_PKGNAME,
    KEY_PKGVER_FUNC,
    PACKAGE_LISTS,
    PACKAGE_SCALARS,
    RECIPE_LISTS,
    Marker,
)
from ..models import CategorySet, Package, Recipe

_SCALAR_FIELDS = {
    "pkgdesc": "description",
    "url": "url",
    "install": "install",
    "changelog": "changelog",
}


def _list_lines(key: str, values: list[str]) -> list[str]:
    # Same shape as `printf 'key:%s\n' "${array[@]}"` on an empty array
    if not values:
        return [f"{key}:"]
    return [f"{key}:{value}" for value in values]


def _arch_section(marker: Marker, arch: str, category_set: CategorySet) -> list[str]:
    lines = [marker.value, f"{KEY_ARCH}:{arch}"]
    for key in category_set.keys():
        lines.extend(_list_lines(key, category_set.get(key)))
    lines.append(Marker.END.value)
    return lines


def _ordered_arches(category_sets: dict[str, CategorySet]) -> list[str]:
    arches = [arch for arch in category_sets if arch != ARCH_ANY]
    if ARCH_ANY in category_sets:
        arches.insert(0, ARCH_ANY)
    return arches


def _package_lines(package: Package) -> list[str]:
    lines = [Marker.PACKAGE.value, f"{KEY_PKGNAME}:{package.name}"]
    for key in PACKAGE_SCALARS:
        value = getattr(package, _SCALAR_FIELDS[key])
        if value is not None:
            lines.append(f"{key}:{value}")
    if package.architectures is not None:
        lines.extend(_list_lines(KEY_ARCH, package.architectures))
    for key in PACKAGE_LISTS:
        values = getattr(package, key)
        if values is not None:
            lines.extend(_list_lines(key, values))
    for arch in _ordered_arches(package.category_sets):
        lines.extend(_arch_section(Marker.PACKAGE_ARCH, arch, package.category_sets[arch]))
    lines.append(Marker.END.value)
    return lines


def encode_recipe(recipe: Recipe) -> list[str]:
    """Protocol lines, without newlines, for one record."""
    version = recipe.version
    lines = [
        Marker.RECIPE.value,
        f"pkgbase:{recipe.base}",
        f"pkgver:{version.pkgver}",
        f"pkgrel:{version.pkgrel}",
        f"epoch:{version.epoch}",
    ]
    lines.extend(f"{key}:{getattr(recipe, field)}" for key, field in _SCALAR_FIELDS.items())
    lines.extend(_list_lines(KEY_ARCH, recipe.architectures))
    for key in RECIPE_LISTS:
        lines.extend(_list_lines(key, getattr(recipe, key)))
    lines.append(f"{KEY_PKGVER_FUNC}:{'y' if recipe.has_pkgver_func else 'n'}")

    for arch in _ordered_arches(recipe.category_sets):
        lines.extend(_arch_section(Marker.ARCH, arch, recipe.category_sets[arch]))
    for package in recipe.packages:
        lines.extend(_package_lines(package))
    lines.append(Marker.END.value)
    return lines


def encode_failure(status: int, message: str) -> list[str]:
    """Lines of a failure record as emitted for a rejected recipe."""
    return [Marker.RECIPE.value, f"failure:{status}", f"error:{message}", Marker.END.value]
