"""Incremental decoder for the evaluator line protocol.

Bytes arrive in arbitrary chunks. Complete lines drive a small state
machine, and every closed ``PKGBUILD ... END`` record yields either a
Recipe or a per-recipe ParseError. Anything that breaks the framing
raises ProtocolError: once framing is lost, later records can no longer
be attributed to their input paths.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from pydantic import ValidationError

from ..errors import ParseError, ProtocolError
from ..keys import (
    ARCH_ANY,
    CHECKSUM_KEYS,
    DEPENDENCY_CATEGORIES,
    KEY_ARCH,
    KEY_ERROR,
    KEY_FAILURE,
    KEY_PKGNAME,
    KEY_PKGVER_FUNC,
    KEY_SOURCE,
    PACKAGE_DEPENDENCY_CATEGORIES,
    PACKAGE_LISTS,
    PACKAGE_SCALARS,
    RECIPE_LISTS,
    RECIPE_SCALARS,
    SEPARATOR,
    Marker,
)
from ..models import CategorySet, Package, Recipe, Version

logger = logging.getLogger(__name__)

DecodedRecord = Recipe | ParseError

RECIPE_HEADER_KEYS = frozenset(
    (*RECIPE_SCALARS, *RECIPE_LISTS, KEY_ARCH, KEY_PKGVER_FUNC, KEY_FAILURE, KEY_ERROR)
)
ARCH_SECTION_KEYS = frozenset((KEY_ARCH, KEY_SOURCE, *CHECKSUM_KEYS, *DEPENDENCY_CATEGORIES))
PACKAGE_HEADER_KEYS = frozenset((KEY_PKGNAME, *PACKAGE_SCALARS, *PACKAGE_LISTS, KEY_ARCH))
PACKAGE_ARCH_SECTION_KEYS = frozenset((KEY_ARCH, *PACKAGE_DEPENDENCY_CATEGORIES))

# Header keys mapped onto model field names
_FIELD_NAMES = {
    "pkgdesc": "description",
    "url": "url",
    "install": "install",
    "changelog": "changelog",
    "license": "license",
    "validpgpkeys": "validpgpkeys",
    "noextract": "noextract",
    "groups": "groups",
    "backup": "backup",
    "options": "options",
    KEY_ARCH: "architectures",
}


class DecoderState(str, Enum):
    """Position of the decoder within the record grammar."""

    AWAIT_RECIPE = "await_recipe"
    RECIPE_HEADER = "recipe_header"
    ARCH_SECTION = "arch_section"
    PACKAGE_HEADER = "package_header"
    PACKAGE_ARCH_SECTION = "package_arch_section"


def as_list(values: list[str]) -> list[str]:
    """Bash prints an empty array as a single empty value."""
    if values == [""]:
        return []
    return values


@dataclass
class _Section:
    """Key/values collected for one header or arch section."""

    values: dict[str, list[str]] = field(default_factory=dict)

    def add(self, key: str, value: str) -> None:
        self.values.setdefault(key, []).append(value)

    def scalar(self, key: str) -> str | None:
        values = self.values.get(key)
        if not values:
            return None
        return values[-1]

    def arch(self) -> str | None:
        return self.scalar(KEY_ARCH)

    def category_set(self) -> CategorySet:
        category_set = CategorySet()
        for key, values in self.values.items():
            if key != KEY_ARCH:
                category_set.set(key, as_list(values))
        return category_set


@dataclass
class _PackageDraft:
    header: _Section = field(default_factory=_Section)
    arch_sections: list[_Section] = field(default_factory=list)


@dataclass
class _RecipeDraft:
    header: _Section = field(default_factory=_Section)
    arch_sections: list[_Section] = field(default_factory=list)
    packages: list[_PackageDraft] = field(default_factory=list)


class ProtocolDecoder:
    """Turn evaluator stdout into decoded records, in emission order.

    Example:
        decoder = ProtocolDecoder()
        decoder.feed(chunk)
        for record in decoder.take():
            ...
        decoder.close()
    """

    def __init__(self) -> None:
        self.state = DecoderState.AWAIT_RECIPE
        self.line_number = 0
        self.records_decoded = 0
        self._buffer = bytearray()
        self._pending: list[DecodedRecord] = []
        self._draft: _RecipeDraft | None = None
        self._section: _Section | None = None
        self._package: _PackageDraft | None = None

    def feed(self, data: bytes) -> int:
        """Consume a chunk of output.

        Returns:
            Number of records completed by this chunk

        Raises:
            ProtocolError: If the output violates the record grammar
        """
        before = self.records_decoded
        self._buffer.extend(data)
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            self.feed_line(raw.decode("utf-8", errors="replace"))
        return self.records_decoded - before

    def feed_line(self, line: str) -> None:
        """Consume one complete line, without its newline."""
        self.line_number += 1
        try:
            marker = Marker(line)
        except ValueError:
            marker = None
        if marker is not None:
            self._on_marker(marker, line)
            return

        key, sep, value = line.partition(SEPARATOR)
        if not sep:
            raise ProtocolError("Line without key separator", self.line_number, line)
        self._on_data(key, value, line)

    def take(self) -> list[DecodedRecord]:
        """Return and forget the records decoded since the last call."""
        records, self._pending = self._pending, []
        return records

    def close(self) -> None:
        """Signal end of output.

        Raises:
            ProtocolError: If a record or a partial line is left open
        """
        if self._buffer:
            tail = self._buffer.decode("utf-8", errors="replace")
            raise ProtocolError("Output ends inside a line", self.line_number + 1, tail)
        if self.state is not DecoderState.AWAIT_RECIPE:
            raise ProtocolError(
                f"Output ends inside a record (state {self.state.value})", self.line_number
            )

    @property
    def in_record(self) -> bool:
        return self.state is not DecoderState.AWAIT_RECIPE

    def _unexpected(self, line: str) -> ProtocolError:
        return ProtocolError(
            f"Unexpected line in state {self.state.value}", self.line_number, line
        )

    def _on_marker(self, marker: Marker, line: str) -> None:
        state = self.state
        if state is DecoderState.AWAIT_RECIPE:
            if marker is not Marker.RECIPE:
                raise self._unexpected(line)
            self._draft = _RecipeDraft()
            self._section = self._draft.header
            self.state = DecoderState.RECIPE_HEADER
            return

        assert self._draft is not None
        if state is DecoderState.RECIPE_HEADER:
            if marker is Marker.ARCH:
                self._section = _Section()
                self._draft.arch_sections.append(self._section)
                self.state = DecoderState.ARCH_SECTION
            elif marker is Marker.PACKAGE:
                self._package = _PackageDraft()
                self._draft.packages.append(self._package)
                self._section = self._package.header
                self.state = DecoderState.PACKAGE_HEADER
            elif marker is Marker.END:
                self._finish_record()
            else:
                raise self._unexpected(line)
        elif state is DecoderState.ARCH_SECTION:
            if marker is not Marker.END:
                raise self._unexpected(line)
            self._section = self._draft.header
            self.state = DecoderState.RECIPE_HEADER
        elif state is DecoderState.PACKAGE_HEADER:
            assert self._package is not None
            if marker is Marker.PACKAGE_ARCH:
                self._section = _Section()
                self._package.arch_sections.append(self._section)
                self.state = DecoderState.PACKAGE_ARCH_SECTION
            elif marker is Marker.END:
                self._package = None
                self._section = self._draft.header
                self.state = DecoderState.RECIPE_HEADER
            else:
                raise self._unexpected(line)
        elif state is DecoderState.PACKAGE_ARCH_SECTION:
            if marker is not Marker.END:
                raise self._unexpected(line)
            assert self._package is not None
            self._section = self._package.header
            self.state = DecoderState.PACKAGE_HEADER

    def _on_data(self, key: str, value: str, line: str) -> None:
        if self.state is DecoderState.AWAIT_RECIPE:
            raise ProtocolError("Data line outside a record", self.line_number, line)
        assert self._section is not None

        allowed = {
            DecoderState.RECIPE_HEADER: RECIPE_HEADER_KEYS,
            DecoderState.ARCH_SECTION: ARCH_SECTION_KEYS,
            DecoderState.PACKAGE_HEADER: PACKAGE_HEADER_KEYS,
            DecoderState.PACKAGE_ARCH_SECTION: PACKAGE_ARCH_SECTION_KEYS,
        }[self.state]
        if key not in allowed:
            logger.debug(f"Ignoring unknown key '{key}' in state {self.state.value}")
            return

        in_arch_section = self.state in (
            DecoderState.ARCH_SECTION,
            DecoderState.PACKAGE_ARCH_SECTION,
        )
        if in_arch_section and key != KEY_ARCH and self._section.arch() is None:
            raise ProtocolError("Arch section data before its arch line", self.line_number, line)
        self._section.add(key, value)

    def _finish_record(self) -> None:
        draft = self._draft
        assert draft is not None
        self._draft = None
        self._section = None
        self._package = None
        self.state = DecoderState.AWAIT_RECIPE
        self.records_decoded += 1

        try:
            record: DecodedRecord = build_recipe(draft)
        except ParseError as e:
            record = e
        except ValidationError as e:
            record = ParseError("; ".join(error["msg"] for error in e.errors()))
        except ValueError as e:
            record = ParseError(str(e))
        if isinstance(record, ParseError):
            logger.debug(f"Record {self.records_decoded} rejected: {record.message}")
        self._pending.append(record)


def _collect_arch_sections(
    sections: list[_Section], scope: str
) -> dict[str, CategorySet]:
    category_sets: dict[str, CategorySet] = {}
    for section in sections:
        arch = section.arch()
        assert arch is not None
        if arch in category_sets:
            raise ValueError(f"{scope} has two sections for architecture '{arch}'")
        category_sets[arch] = section.category_set()
    return category_sets


def _header_fields(section: _Section, scalars: tuple[str, ...], lists: tuple[str, ...]) -> dict:
    fields: dict = {}
    for key in scalars:
        value = section.scalar(key)
        if value is not None and key in _FIELD_NAMES:
            fields[_FIELD_NAMES[key]] = value
    for key in (*lists, KEY_ARCH):
        if key in section.values:
            fields[_FIELD_NAMES[key]] = as_list(section.values[key])
    return fields


def _build_version(header: _Section) -> Version:
    epoch_text = header.scalar("epoch") or "0"
    if not epoch_text.isdigit():
        raise ValueError(f"Invalid epoch '{epoch_text}'")
    return Version(
        epoch=int(epoch_text),
        pkgver=header.scalar("pkgver") or "",
        pkgrel=header.scalar("pkgrel") or "",
    )


def _build_package(draft: _PackageDraft, recipe_architectures: list[str]) -> Package:
    name = draft.header.scalar(KEY_PKGNAME)
    if not name:
        raise ValueError("Package section without pkgname")
    fields = _header_fields(draft.header, PACKAGE_SCALARS, PACKAGE_LISTS)
    category_sets = _collect_arch_sections(draft.arch_sections, f"Package '{name}'")
    architectures = fields.get("architectures") or recipe_architectures
    for arch in category_sets:
        if arch != ARCH_ANY and arch not in architectures:
            raise ValueError(
                f"Package '{name}' has values for undeclared architecture '{arch}'"
            )
    return Package(name=name, category_sets=category_sets, **fields)


def build_recipe(draft: _RecipeDraft) -> Recipe:
    """Materialize a closed record.

    Raises:
        ParseError: For evaluator failure records
        ValueError: If the record violates an entity invariant
    """
    header = draft.header
    failure = header.scalar(KEY_FAILURE)
    if failure is not None:
        status = int(failure) if failure.isdigit() else None
        message = header.scalar(KEY_ERROR) or f"Evaluator rejected recipe (status {failure})"
        raise ParseError(message, status=status)

    base = header.scalar("pkgbase")
    if not base:
        raise ValueError("Record without pkgbase")

    pkgver_func = header.scalar(KEY_PKGVER_FUNC)
    if pkgver_func not in (None, "y", "n"):
        raise ValueError(f"Invalid pkgver_func value '{pkgver_func}'")

    fields = _header_fields(header, RECIPE_SCALARS, RECIPE_LISTS)
    architectures = fields.get("architectures") or [ARCH_ANY]
    packages = [_build_package(package, architectures) for package in draft.packages]

    return Recipe(
        base=base,
        version=_build_version(header),
        category_sets=_collect_arch_sections(draft.arch_sections, f"Recipe '{base}'"),
        has_pkgver_func=pkgver_func == "y",
        packages=packages,
        **fields,
    )
