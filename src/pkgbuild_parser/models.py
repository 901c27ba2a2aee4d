"""Entity graph decoded from evaluator output.

A Recipe is one PKGBUILD. It owns an ordered list of Packages (split
packages). Packages only carry what their package function declared;
scalar and list metadata that a package does not declare is inherited
from the recipe through ``Recipe.resolve``. Dependency-like categories are
never inherited.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ParseError
from .keys import (
    ARCH_ANY,
    CHECKSUM_ALGORITHMS,
    CHECKSUM_KEYS,
    DEPENDENCY_CATEGORIES,
    KEY_SOURCE,
    PACKAGE_DEPENDENCY_CATEGORIES,
)

if TYPE_CHECKING:
    from .sources import SourceWithChecksums


def check_architectures(architectures: list[str], scope: str) -> None:
    """Reject "any" combined with concrete architectures."""
    if ARCH_ANY in architectures and len(architectures) > 1:
        raise ValueError(
            f"{scope} architecture 'any' found when multiple architectures defined: "
            f"{' '.join(architectures)}"
        )


class Version(BaseModel):
    """An epoch/pkgver/pkgrel triple."""

    model_config = ConfigDict(frozen=True)

    epoch: int = Field(default=0, ge=0)
    pkgver: str = ""
    pkgrel: str = ""

    @classmethod
    def parse(cls, value: str) -> Version:
        """Parse ``[epoch:]pkgver[-pkgrel]``.

        Raises:
            ValueError: If the epoch is not a non-negative integer
        """
        epoch = 0
        if ":" in value:
            epoch_str, value = value.split(":", 1)
            if not epoch_str.isdigit():
                raise ValueError(f"Invalid epoch '{epoch_str}'")
            epoch = int(epoch_str)
        pkgver, sep, pkgrel = value.rpartition("-")
        if not sep:
            pkgver, pkgrel = value, ""
        return cls(epoch=epoch, pkgver=pkgver, pkgrel=pkgrel)

    def __str__(self) -> str:
        text = self.pkgver
        if self.epoch:
            text = f"{self.epoch}:{text}"
        if self.pkgrel:
            text = f"{text}-{self.pkgrel}"
        return text


class CategorySet(BaseModel):
    """Ordered values for each category key of one architecture scope."""

    depends: list[str] = Field(default_factory=list)
    makedepends: list[str] = Field(default_factory=list)
    checkdepends: list[str] = Field(default_factory=list)
    optdepends: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    provides: list[str] = Field(default_factory=list)
    replaces: list[str] = Field(default_factory=list)
    source: list[str] = Field(default_factory=list)
    checksums: dict[str, list[str]] = Field(default_factory=dict)

    def get(self, key: str) -> list[str]:
        """Values for a protocol key such as ``depends`` or ``sha256sums``."""
        if key in CHECKSUM_KEYS:
            return self.checksums.get(CHECKSUM_KEYS[key], [])
        if key in DEPENDENCY_CATEGORIES or key == KEY_SOURCE:
            return getattr(self, key)
        raise KeyError(key)

    def set(self, key: str, values: list[str]) -> None:
        if key in CHECKSUM_KEYS:
            if values:
                self.checksums[CHECKSUM_KEYS[key]] = list(values)
            else:
                self.checksums.pop(CHECKSUM_KEYS[key], None)
        elif key in DEPENDENCY_CATEGORIES or key == KEY_SOURCE:
            setattr(self, key, list(values))
        else:
            raise KeyError(key)

    def keys(self) -> list[str]:
        """Protocol keys with at least one value, in protocol order."""
        keys = [key for key in (KEY_SOURCE, *DEPENDENCY_CATEGORIES) if getattr(self, key)]
        keys.extend(f"{alg}sums" for alg in CHECKSUM_ALGORITHMS if self.checksums.get(alg))
        return keys

    def is_empty(self) -> bool:
        return not self.keys()

    def merged(self, other: CategorySet) -> CategorySet:
        """Concatenate ``other`` after this set, key by key."""
        result = self.model_copy(deep=True)
        for key in other.keys():
            result.set(key, result.get(key) + other.get(key))
        return result


class Package(BaseModel):
    """A split package declared by a recipe.

    ``None`` in an override field means the package function did not
    declare it; an empty string or list means it was declared empty.
    """

    name: str
    description: str | None = None
    url: str | None = None
    install: str | None = None
    changelog: str | None = None
    architectures: list[str] | None = None
    license: list[str] | None = None
    groups: list[str] | None = None
    backup: list[str] | None = None
    options: list[str] | None = None
    category_sets: dict[str, CategorySet] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_invariants(self) -> Package:
        if self.architectures is not None:
            check_architectures(self.architectures, f"Package '{self.name}'")
        for arch, category_set in self.category_sets.items():
            for key in category_set.keys():
                if key not in PACKAGE_DEPENDENCY_CATEGORIES:
                    raise ValueError(
                        f"Package '{self.name}' cannot declare '{key}' (arch {arch})"
                    )
        return self

    @property
    def default(self) -> CategorySet:
        """The architecture-independent category set."""
        return self.category_sets.get(ARCH_ANY) or CategorySet()

    def overrides(self) -> list[str]:
        """Names of the metadata fields this package declared itself."""
        return [
            name
            for name in PACKAGE_OVERRIDE_FIELDS
            if getattr(self, name) is not None
        ]


PACKAGE_OVERRIDE_FIELDS = (
    "description",
    "url",
    "install",
    "changelog",
    "architectures",
    "license",
    "groups",
    "backup",
    "options",
)


class ResolvedPackage(BaseModel):
    """A package with recipe-level metadata filled in for absent overrides."""

    name: str
    base: str
    version: Version
    description: str
    url: str
    install: str
    changelog: str
    architectures: list[str]
    license: list[str]
    groups: list[str]
    backup: list[str]
    options: list[str]
    category_sets: dict[str, CategorySet]

    @property
    def default(self) -> CategorySet:
        return self.category_sets.get(ARCH_ANY) or CategorySet()


class Recipe(BaseModel):
    """One evaluated PKGBUILD."""

    base: str
    version: Version = Field(default_factory=Version)
    description: str = ""
    url: str = ""
    install: str = ""
    changelog: str = ""
    architectures: list[str] = Field(default_factory=lambda: [ARCH_ANY])
    license: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    backup: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)
    validpgpkeys: list[str] = Field(default_factory=list)
    noextract: list[str] = Field(default_factory=list)
    category_sets: dict[str, CategorySet] = Field(default_factory=dict)
    has_pkgver_func: bool = False
    packages: list[Package] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> Recipe:
        if not self.architectures:
            raise ValueError(f"Recipe '{self.base}' declares no architecture")
        check_architectures(self.architectures, f"Recipe '{self.base}'")
        self.category_sets.setdefault(ARCH_ANY, CategorySet())
        for arch in self.category_sets:
            if arch != ARCH_ANY and arch not in self.architectures:
                raise ValueError(
                    f"Recipe '{self.base}' has values for undeclared architecture '{arch}'"
                )
        seen: set[str] = set()
        for package in self.packages:
            if package.name in seen:
                raise ValueError(f"Recipe '{self.base}' declares package '{package.name}' twice")
            seen.add(package.name)
        return self

    @property
    def default(self) -> CategorySet:
        """The architecture-independent category set."""
        return self.category_sets[ARCH_ANY]

    @property
    def package_names(self) -> list[str]:
        return [package.name for package in self.packages]

    def for_arch(self, arch: str) -> CategorySet:
        """Generic values followed by the values specific to ``arch``."""
        specific = self.category_sets.get(arch)
        if arch == ARCH_ANY or specific is None:
            return self.default.model_copy(deep=True)
        return self.default.merged(specific)

    def get_package(self, name: str) -> Package:
        for package in self.packages:
            if package.name == name:
                return package
        raise KeyError(name)

    def resolve(self, package: Package | str) -> ResolvedPackage:
        """Fill absent package overrides with this recipe's values."""
        if isinstance(package, str):
            package = self.get_package(package)

        def pick(name: str, recipe_value: Any) -> Any:
            value = getattr(package, name)
            return recipe_value if value is None else value

        return ResolvedPackage(
            name=package.name,
            base=self.base,
            version=self.version,
            description=pick("description", self.description),
            url=pick("url", self.url),
            install=pick("install", self.install),
            changelog=pick("changelog", self.changelog),
            architectures=list(pick("architectures", self.architectures)),
            license=list(pick("license", self.license)),
            groups=list(pick("groups", self.groups)),
            backup=list(pick("backup", self.backup)),
            options=list(pick("options", self.options)),
            category_sets={
                arch: category_set.model_copy(deep=True)
                for arch, category_set in package.category_sets.items()
            },
        )

    def sources_with_checksums(self, arch: str = ARCH_ANY) -> list[SourceWithChecksums]:
        """Sources for ``arch`` paired with their decoded checksums."""
        from .sources import pair_sources_with_checksums

        return pair_sources_with_checksums(self.for_arch(arch))


@dataclass
class RecipeResult:
    """Outcome for one input path of a batch."""

    path: str
    recipe: Recipe | None = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Recipe:
        """Return the recipe or raise the per-recipe ParseError."""
        if self.error is not None:
            raise self.error
        assert self.recipe is not None
        return self.recipe
