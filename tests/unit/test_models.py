"""Unit tests for the recipe entity graph."""

import pytest

from pkgbuild_parser.errors import ParseError
from pkgbuild_parser.models import (
    CategorySet,
    Package,
    Recipe,
    RecipeResult,
    Version,
)


def split_recipe() -> Recipe:
    """Recipe with a generic package and one that overrides pkgdesc and depends."""
    return Recipe(
        base="tools",
        version=Version(pkgver="2.1", pkgrel="1"),
        description="Shared description",
        url="https://tools.example.org",
        architectures=["x86_64", "aarch64"],
        license=["MIT"],
        category_sets={
            "any": CategorySet(depends=["glibc"], makedepends=["cmake"]),
            "x86_64": CategorySet(depends=["lib32-glibc"]),
        },
        packages=[
            Package(name="tools-core"),
            Package(
                name="tools-extra",
                description="Extra tools",
                license=[],
                category_sets={"any": CategorySet(depends=["tools-core"])},
            ),
        ],
    )


# =============================================================================
# CategorySet
# =============================================================================


class TestCategorySet:
    """Test keyed access to category values."""

    def test_get_and_set_dependency_key(self):
        """Dependency keys map onto fields."""
        category_set = CategorySet()
        category_set.set("depends", ["a", "b"])

        assert category_set.get("depends") == ["a", "b"]
        assert category_set.depends == ["a", "b"]

    def test_checksum_keys_use_algorithm_names(self):
        """sha256sums is stored under the algorithm name."""
        category_set = CategorySet()
        category_set.set("sha256sums", ["SKIP"])

        assert category_set.checksums == {"sha256": ["SKIP"]}
        assert category_set.get("sha256sums") == ["SKIP"]
        assert category_set.get("md5sums") == []

    def test_setting_empty_checksums_removes_algorithm(self):
        """An empty checksum array leaves no entry behind."""
        category_set = CategorySet(checksums={"md5": ["abc"]})
        category_set.set("md5sums", [])

        assert category_set.checksums == {}

    def test_unknown_key(self):
        """Keys outside the category vocabulary are rejected."""
        with pytest.raises(KeyError):
            CategorySet().get("pkgdesc")
        with pytest.raises(KeyError):
            CategorySet().set("pkgdesc", ["x"])

    def test_keys_in_protocol_order(self):
        """keys() lists only populated keys, source first and checksums last."""
        category_set = CategorySet(
            provides=["p"],
            depends=["d"],
            source=["s"],
            checksums={"b2": ["x"], "md5": ["y"]},
        )

        assert category_set.keys() == ["source", "depends", "provides", "md5sums", "b2sums"]
        assert not category_set.is_empty()
        assert CategorySet().is_empty()

    def test_merged_concatenates(self):
        """Merging appends the other set's values key by key."""
        generic = CategorySet(depends=["a"], source=["s1"])
        specific = CategorySet(depends=["b"], conflicts=["c"])

        merged = generic.merged(specific)

        assert merged.depends == ["a", "b"]
        assert merged.conflicts == ["c"]
        assert merged.source == ["s1"]
        assert generic.depends == ["a"]


# =============================================================================
# Recipe invariants
# =============================================================================


class TestRecipeInvariants:
    """Test validation performed when a Recipe is built."""

    def test_defaults(self):
        """A bare recipe is architecture-independent with an empty generic set."""
        recipe = Recipe(base="foo")

        assert recipe.architectures == ["any"]
        assert recipe.default.is_empty()
        assert recipe.has_pkgver_func is False

    def test_any_with_concrete_architecture(self):
        """'any' cannot be combined with other architectures."""
        with pytest.raises(ValueError, match="architecture 'any'"):
            Recipe(base="foo", architectures=["any", "x86_64"])

    def test_empty_architectures(self):
        """At least one architecture is required."""
        with pytest.raises(ValueError, match="no architecture"):
            Recipe(base="foo", architectures=[])

    def test_values_for_undeclared_architecture(self):
        """Per-arch values must belong to a declared architecture."""
        with pytest.raises(ValueError, match="undeclared architecture 'armv7h'"):
            Recipe(
                base="foo",
                architectures=["x86_64"],
                category_sets={"armv7h": CategorySet(depends=["x"])},
            )

    def test_duplicate_package(self):
        """Package names are unique within a recipe."""
        with pytest.raises(ValueError, match="twice"):
            Recipe(base="foo", packages=[Package(name="foo"), Package(name="foo")])

    def test_package_cannot_declare_makedepends(self):
        """Build-time categories are recipe-only."""
        with pytest.raises(ValueError, match="makedepends"):
            Package(name="foo", category_sets={"any": CategorySet(makedepends=["gcc"])})

    def test_package_mixed_any(self):
        """Packages get the same 'any' check as recipes."""
        with pytest.raises(ValueError, match="Package 'foo'"):
            Package(name="foo", architectures=["x86_64", "any"])


# =============================================================================
# Resolution
# =============================================================================


class TestRecipeResolve:
    """Test inheritance of recipe metadata into packages."""

    def test_absent_overrides_inherit(self):
        """A package without overrides takes the recipe's metadata."""
        resolved = split_recipe().resolve("tools-core")

        assert resolved.description == "Shared description"
        assert resolved.url == "https://tools.example.org"
        assert resolved.license == ["MIT"]
        assert resolved.architectures == ["x86_64", "aarch64"]
        assert resolved.version == Version(pkgver="2.1", pkgrel="1")
        assert resolved.base == "tools"

    def test_declared_overrides_win(self):
        """Overrides replace the recipe value, even when declared empty."""
        resolved = split_recipe().resolve("tools-extra")

        assert resolved.description == "Extra tools"
        assert resolved.license == []

    def test_dependencies_not_inherited(self):
        """Recipe-level dependency categories never flow into packages."""
        recipe = split_recipe()

        assert recipe.resolve("tools-core").category_sets == {}
        assert recipe.resolve("tools-extra").default.depends == ["tools-core"]

    def test_resolve_accepts_package(self):
        """resolve() takes a Package as well as a name."""
        recipe = split_recipe()

        assert recipe.resolve(recipe.packages[1]).name == "tools-extra"

    def test_unknown_package(self):
        """Unknown names raise KeyError."""
        with pytest.raises(KeyError):
            split_recipe().resolve("missing")

    def test_overrides_lists_declared_fields(self):
        """overrides() reports which fields a package declared."""
        recipe = split_recipe()

        assert recipe.packages[0].overrides() == []
        assert recipe.packages[1].overrides() == ["description", "license"]

    def test_package_names(self):
        """package_names keeps declaration order."""
        assert split_recipe().package_names == ["tools-core", "tools-extra"]


class TestRecipeForArch:
    """Test the generic-plus-specific view of category sets."""

    def test_specific_values_follow_generic(self):
        """Arch-specific values are appended after the generic ones."""
        category_set = split_recipe().for_arch("x86_64")

        assert category_set.depends == ["glibc", "lib32-glibc"]
        assert category_set.makedepends == ["cmake"]

    def test_arch_without_values(self):
        """An arch without its own set sees only generic values."""
        assert split_recipe().for_arch("aarch64").depends == ["glibc"]

    def test_returns_copy(self):
        """Mutating the view leaves the recipe untouched."""
        recipe = split_recipe()
        recipe.for_arch("any").depends.append("zlib")

        assert recipe.default.depends == ["glibc"]


# =============================================================================
# RecipeResult
# =============================================================================


class TestRecipeResult:
    """Test the per-path outcome wrapper."""

    def test_ok(self):
        """A result with a recipe unwraps to it."""
        recipe = Recipe(base="foo")
        result = RecipeResult("foo/PKGBUILD", recipe=recipe)

        assert result.ok
        assert result.unwrap() is recipe

    def test_error(self):
        """A failed result raises its ParseError on unwrap."""
        error = ParseError("broken", status=4, path="foo/PKGBUILD")
        result = RecipeResult("foo/PKGBUILD", error=error)

        assert not result.ok
        with pytest.raises(ParseError) as exc_info:
            result.unwrap()
        assert exc_info.value.status == 4
        assert str(exc_info.value) == "foo/PKGBUILD: broken"
