"""Unit tests for the evaluator protocol decoder and encoder."""

import pytest

from pkgbuild_parser.errors import ParseError, ProtocolError
from pkgbuild_parser.models import CategorySet, Package, Recipe, Version
from pkgbuild_parser.protocol import DecoderState, ProtocolDecoder, encode_failure, encode_recipe


def decode(lines: list[str]) -> list:
    """Feed lines in one chunk, close the decoder and return its records."""
    decoder = ProtocolDecoder()
    decoder.feed("".join(f"{line}\n" for line in lines).encode())
    decoder.close()
    return decoder.take()


SIMPLE_RECORD = [
    "PKGBUILD",
    "pkgbase:hello",
    "pkgver:2.12",
    "pkgrel:1",
    "epoch:",
    "pkgdesc:Prints a friendly greeting",
    "url:https://www.gnu.org/software/hello/",
    "arch:x86_64",
    "license:GPL-3.0-or-later",
    "pkgver_func:n",
    "ARCH",
    "arch:any",
    "source:https://ftp.gnu.org/gnu/hello/hello-2.12.tar.gz",
    "sha256sums:cf04af86dc085268c5f4470fbae49b18afbc221b78096aab842d934a76bad0ab",
    "depends:glibc",
    "END",
    "ARCH",
    "arch:x86_64",
    "source:",
    "depends:",
    "END",
    "PACKAGE",
    "pkgname:hello",
    "PACKAGEARCH",
    "arch:any",
    "END",
    "PACKAGEARCH",
    "arch:x86_64",
    "depends:",
    "END",
    "END",
    "END",
]

SPLIT_RECORD = [
    "PKGBUILD",
    "pkgbase:tools",
    "pkgver:1.0",
    "pkgrel:3",
    "epoch:1",
    "pkgdesc:Tool suite",
    "arch:any",
    "license:MIT",
    "pkgver_func:y",
    "ARCH",
    "arch:any",
    "makedepends:cmake",
    "depends:zlib",
    "END",
    "PACKAGE",
    "pkgname:tools-core",
    "PACKAGEARCH",
    "arch:any",
    "END",
    "END",
    "PACKAGE",
    "pkgname:tools-docs",
    "pkgdesc:Documentation",
    "license:",
    "PACKAGEARCH",
    "arch:any",
    "depends:tools-core",
    "optdepends:man-db: for man pages",
    "END",
    "END",
    "END",
]


# =============================================================================
# Successful records
# =============================================================================


class TestDecodeRecords:
    """Test records that decode into recipes."""

    def test_single_package_recipe(self):
        """Header, arch sections and the package become one Recipe."""
        (recipe,) = decode(SIMPLE_RECORD)

        assert isinstance(recipe, Recipe)
        assert recipe.base == "hello"
        assert recipe.version == Version(pkgver="2.12", pkgrel="1")
        assert recipe.description == "Prints a friendly greeting"
        assert recipe.architectures == ["x86_64"]
        assert recipe.license == ["GPL-3.0-or-later"]
        assert recipe.has_pkgver_func is False
        assert recipe.default.depends == ["glibc"]
        assert recipe.default.checksums["sha256"][0].startswith("cf04af86")
        assert recipe.category_sets["x86_64"].is_empty()
        assert recipe.package_names == ["hello"]

    def test_split_recipe(self):
        """Package overrides are kept apart from recipe values."""
        (recipe,) = decode(SPLIT_RECORD)

        assert recipe.version == Version(epoch=1, pkgver="1.0", pkgrel="3")
        assert recipe.has_pkgver_func is True
        core = recipe.get_package("tools-core")
        docs = recipe.get_package("tools-docs")
        assert core.description is None
        assert core.default.is_empty()
        assert docs.description == "Documentation"
        assert docs.license == []
        assert docs.default.depends == ["tools-core"]
        assert docs.default.optdepends == ["man-db: for man pages"]

        resolved = recipe.resolve("tools-core")
        assert resolved.description == "Tool suite"
        assert resolved.license == ["MIT"]
        assert resolved.default.depends == []

    def test_records_in_emission_order(self):
        """Several records come out in the order they were written."""
        records = decode(SIMPLE_RECORD + SPLIT_RECORD + SIMPLE_RECORD)

        assert [record.base for record in records] == ["hello", "tools", "hello"]

    def test_byte_by_byte_feed(self):
        """Chunk boundaries never affect the result."""
        data = "".join(f"{line}\n" for line in SPLIT_RECORD).encode()
        decoder = ProtocolDecoder()
        completed = sum(decoder.feed(data[i : i + 1]) for i in range(len(data)))
        decoder.close()

        assert completed == 1
        assert decoder.take()[0].base == "tools"

    def test_feed_reports_completed_records(self):
        """feed() returns the number of records closed by the chunk."""
        decoder = ProtocolDecoder()
        payload = "".join(f"{line}\n" for line in SIMPLE_RECORD * 2).encode()
        # Second chunk starts inside the second record's header
        middle = len(payload) // 2 + 20

        assert decoder.feed(payload[:middle]) == 1
        assert decoder.in_record
        assert decoder.feed(payload[middle:]) == 1
        assert decoder.state is DecoderState.AWAIT_RECIPE
        assert decoder.records_decoded == 2

    def test_take_drains(self):
        """take() returns each record once."""
        decoder = ProtocolDecoder()
        decoder.feed("".join(f"{line}\n" for line in SIMPLE_RECORD).encode())

        assert len(decoder.take()) == 1
        assert decoder.take() == []

    def test_value_keeps_later_colons(self):
        """Only the first colon separates key and value."""
        (recipe,) = decode(SIMPLE_RECORD)

        assert recipe.url == "https://www.gnu.org/software/hello/"
        assert recipe.default.source == ["https://ftp.gnu.org/gnu/hello/hello-2.12.tar.gz"]

    def test_unknown_key_ignored(self):
        """Unknown keys inside a record are skipped."""
        lines = list(SIMPLE_RECORD)
        lines.insert(2, "makepkg_future_key:value")

        (recipe,) = decode(lines)

        assert isinstance(recipe, Recipe)

    def test_package_arch_override(self):
        """A package may narrow its architectures and carry per-arch values."""
        lines = [
            "PKGBUILD",
            "pkgbase:multi",
            "pkgver:1",
            "pkgrel:1",
            "arch:x86_64",
            "arch:aarch64",
            "ARCH",
            "arch:any",
            "END",
            "PACKAGE",
            "pkgname:multi",
            "arch:x86_64",
            "PACKAGEARCH",
            "arch:any",
            "END",
            "PACKAGEARCH",
            "arch:x86_64",
            "depends:lib32-glibc",
            "END",
            "END",
            "END",
        ]

        (recipe,) = decode(lines)

        package = recipe.get_package("multi")
        assert package.architectures == ["x86_64"]
        assert package.category_sets["x86_64"].depends == ["lib32-glibc"]


# =============================================================================
# Per-recipe failures
# =============================================================================


class TestDecodeFailures:
    """Test records that become ParseError values."""

    def test_failure_record(self):
        """failure/error lines become a ParseError with the status."""
        (error,) = decode(encode_failure(4, "Missing package_foo-doc() function"))

        assert isinstance(error, ParseError)
        assert error.status == 4
        assert error.message == "Missing package_foo-doc() function"

    def test_failure_without_message(self):
        """A failure record without an error line gets a generic message."""
        (error,) = decode(["PKGBUILD", "failure:1", "END"])

        assert error.status == 1
        assert "status 1" in error.message

    def test_failure_does_not_desync(self):
        """Records after a failure are still decoded."""
        records = decode(encode_failure(2, "ambiguous") + SIMPLE_RECORD)

        assert isinstance(records[0], ParseError)
        assert isinstance(records[1], Recipe)

    def test_mixed_any(self):
        """A recipe mixing 'any' with concrete arches is rejected, not fatal."""
        lines = ["PKGBUILD", "pkgbase:bad", "arch:any", "arch:x86_64", "END"]

        (error,) = decode(lines)

        assert isinstance(error, ParseError)
        assert error.status is None
        assert "architecture 'any'" in error.message

    def test_empty_arch_list(self):
        """An empty arch array fails validation."""
        (error,) = decode(["PKGBUILD", "pkgbase:bad", "arch:", "END"])

        assert isinstance(error, ParseError)

    def test_missing_pkgbase(self):
        """Every record needs a pkgbase."""
        (error,) = decode(["PKGBUILD", "pkgver:1", "END"])

        assert "pkgbase" in error.message

    def test_invalid_epoch(self):
        """Epochs must be non-negative integers."""
        (error,) = decode(["PKGBUILD", "pkgbase:bad", "epoch:one", "END"])

        assert "epoch" in error.message

    def test_invalid_pkgver_func(self):
        """pkgver_func only takes y or n."""
        (error,) = decode(["PKGBUILD", "pkgbase:bad", "pkgver_func:maybe", "END"])

        assert "pkgver_func" in error.message

    def test_duplicate_arch_section(self):
        """Each architecture has at most one section."""
        section = ["ARCH", "arch:any", "END"]
        lines = ["PKGBUILD", "pkgbase:bad", *section, *section, "END"]

        (error,) = decode(lines)

        assert "two sections" in error.message

    def test_package_section_for_undeclared_arch(self):
        """Package arch sections must name a declared architecture."""
        lines = [
            "PKGBUILD",
            "pkgbase:bad",
            "arch:x86_64",
            "PACKAGE",
            "pkgname:bad",
            "PACKAGEARCH",
            "arch:riscv64",
            "END",
            "END",
            "END",
        ]

        (error,) = decode(lines)

        assert "riscv64" in error.message


# =============================================================================
# Framing errors
# =============================================================================


class TestProtocolErrors:
    """Test violations that make the whole stream unusable."""

    @pytest.mark.parametrize(
        "lines",
        [
            ["END"],
            ["pkgbase:orphan"],
            ["PKGBUILD", "no separator here"],
            ["PKGBUILD", "pkgbase:x", "PACKAGEARCH"],
            ["PKGBUILD", "ARCH", "ARCH"],
            ["PKGBUILD", "ARCH", "depends:early"],
            ["PKGBUILD", "PACKAGE", "ARCH"],
        ],
    )
    def test_framing_violation(self, lines):
        """Marker or data lines in the wrong place raise ProtocolError."""
        decoder = ProtocolDecoder()

        with pytest.raises(ProtocolError):
            decoder.feed("".join(f"{line}\n" for line in lines).encode())

    def test_line_number_reported(self):
        """ProtocolError carries the offending line."""
        decoder = ProtocolDecoder()

        with pytest.raises(ProtocolError) as exc_info:
            decoder.feed(b"PKGBUILD\npkgbase:x\nbogus\n")

        assert exc_info.value.line_number == 3
        assert exc_info.value.line == "bogus"

    def test_truncated_record(self):
        """close() inside an open record raises."""
        decoder = ProtocolDecoder()
        decoder.feed("".join(f"{line}\n" for line in SIMPLE_RECORD[:-3]).encode())

        with pytest.raises(ProtocolError, match="inside a record"):
            decoder.close()

    def test_partial_line(self):
        """close() with an unterminated line raises."""
        decoder = ProtocolDecoder()
        decoder.feed(b"PKGBUILD\npkgbase:x\nEN")

        with pytest.raises(ProtocolError, match="inside a line"):
            decoder.close()

    def test_clean_close(self):
        """close() after complete records is silent."""
        decoder = ProtocolDecoder()
        decoder.feed("".join(f"{line}\n" for line in SIMPLE_RECORD).encode())

        decoder.close()


# =============================================================================
# Encoder
# =============================================================================


class TestEncoder:
    """Test that encoded recipes decode back to equal entities."""

    def test_round_trip_split_recipe(self):
        """A recipe with overrides and per-arch values survives encoding."""
        recipe = Recipe(
            base="grp",
            version=Version(epoch=2, pkgver="0.9.1", pkgrel="4"),
            description="Group of tools",
            url="https://grp.example.org",
            architectures=["x86_64", "aarch64"],
            license=["Apache-2.0", "MIT"],
            options=["!lto"],
            validpgpkeys=["ABCDEF0123456789"],
            has_pkgver_func=True,
            category_sets={
                "any": CategorySet(
                    source=["grp-0.9.1.tar.gz", "fix.patch"],
                    checksums={"sha256": ["SKIP", "SKIP"]},
                    depends=["glibc"],
                ),
                "aarch64": CategorySet(source=["arm.patch"], checksums={"sha256": ["SKIP"]}),
            },
            packages=[
                Package(name="grp-cli"),
                Package(
                    name="grp-gui",
                    description="",
                    architectures=["x86_64"],
                    groups=[],
                    category_sets={
                        "any": CategorySet(depends=["grp-cli", "gtk4"]),
                        "x86_64": CategorySet(provides=["grp-gui-bin"]),
                    },
                ),
            ],
        )

        (decoded,) = decode(encode_recipe(recipe))

        assert decoded == recipe

    def test_encoded_shape(self):
        """Empty arrays are written as a bare key, like bash printf."""
        lines = encode_recipe(Recipe(base="tiny"))

        assert lines[0] == "PKGBUILD"
        assert "license:" in lines
        assert "arch:any" in lines
        assert lines[-1] == "END"
