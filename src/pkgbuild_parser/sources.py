"""Typed view of ``source=()`` entries and their integrity checksums.

A source entry has the form ``[name::][vcs+]url[#fragment][?query]``.
Parsing never fails: unknown schemes map to ``SourceProtocol.UNKNOWN``
and unknown fragments are left in the URL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .models import CategorySet

logger = logging.getLogger(__name__)


class SourceProtocol(str, Enum):
    """How a source would be fetched."""

    UNKNOWN = "unknown"
    LOCAL = "local"
    FILE = "file"
    FTP = "ftp"
    HTTP = "http"
    HTTPS = "https"
    RSYNC = "rsync"
    BZR = "bzr"
    FOSSIL = "fossil"
    GIT = "git"
    HG = "hg"
    SVN = "svn"

    @property
    def is_vcs(self) -> bool:
        return self in VCS_FRAGMENTS


# Fragment kinds each VCS understands
VCS_FRAGMENTS: dict[SourceProtocol, frozenset[str]] = {
    SourceProtocol.BZR: frozenset({"revision"}),
    SourceProtocol.FOSSIL: frozenset({"branch", "commit", "tag"}),
    SourceProtocol.GIT: frozenset({"branch", "commit", "tag"}),
    SourceProtocol.HG: frozenset({"branch", "revision", "tag"}),
    SourceProtocol.SVN: frozenset({"revision"}),
}

# Digest sizes in bytes; "ck" is a decimal CRC and handled separately
DIGEST_SIZES = {
    "md5": 16,
    "sha1": 20,
    "sha224": 28,
    "sha256": 32,
    "sha384": 48,
    "sha512": 64,
    "b2": 64,
}

SKIP = "SKIP"


@dataclass(frozen=True)
class Fragment:
    """A VCS fragment such as ``#tag=v1.0``."""

    kind: str
    value: str

    def __str__(self) -> str:
        return f"{self.kind}={self.value}"


@dataclass
class Source:
    """One parsed ``source=()`` entry.

    Attributes:
        name: Local file name, explicit (``name::``) or derived from the URL
        url: URL used to fetch, without the ``vcs+`` prefix and fragment
        protocol: Fetch protocol
        fragment: VCS fragment, if a recognized one was given
        signed: Whether a git source requests signature verification
    """

    name: str
    url: str
    protocol: SourceProtocol
    fragment: Fragment | None = None
    signed: bool = False

    @classmethod
    def parse(cls, definition: str) -> Source:
        explicit_name = ""
        url = definition
        if "::" in definition:
            explicit_name, url = definition.split("::", 1)

        if "://" not in url:
            protocol = SourceProtocol.LOCAL
            fragment = None
            signed = False
        else:
            scheme = url.split("://", 1)[0]
            if "+" in scheme:
                vcs = scheme.split("+", 1)[0]
                url = url[len(vcs) + 1 :]
                scheme = vcs
            try:
                protocol = SourceProtocol(scheme)
            except ValueError:
                logger.warning(f"Unknown source protocol '{scheme}' in '{definition}'")
                protocol = SourceProtocol.UNKNOWN
            signed = protocol is SourceProtocol.GIT and "?signed" in url
            url, fragment = _split_fragment(url, protocol)

        source = cls(
            name=explicit_name,
            url=url,
            protocol=protocol,
            fragment=fragment,
            signed=signed,
        )
        if not source.name:
            source.name = source.url_name()
        return source

    def url_name(self) -> str:
        """File name makepkg would derive from the URL."""
        name = self.url.rsplit("/", 1)[-1]
        if self.protocol is SourceProtocol.BZR and "lp:" in name:
            name = name.split("lp:", 1)[1]
        elif self.protocol is SourceProtocol.FOSSIL:
            name += ".fossil"
        elif self.protocol is SourceProtocol.GIT and name.endswith(".git"):
            name = name[: -len(".git")]
        return name

    def to_pkgbuild(self) -> str:
        """Render back to the form used in a ``source=()`` array."""
        text = ""
        if self.name != self.url_name():
            text = f"{self.name}::"
        scheme = self.url.split("://", 1)[0] if "://" in self.url else ""
        if self.protocol not in (SourceProtocol.LOCAL, SourceProtocol.UNKNOWN):
            if scheme != self.protocol.value:
                text += f"{self.protocol.value}+"
        text += self.url
        if self.fragment is not None:
            text += f"#{self.fragment}"
        if self.signed and "?signed" not in self.url:
            text += "?signed"
        return text

    def __str__(self) -> str:
        return f"{self.name} ({self.protocol.value}): {self.url}"


def _split_fragment(url: str, protocol: SourceProtocol) -> tuple[str, Fragment | None]:
    kinds = VCS_FRAGMENTS.get(protocol)
    if not kinds:
        return url, None
    prefix, _, fragment = url.partition("#")
    if protocol is SourceProtocol.GIT:
        # git carries "?signed" either before or after the fragment
        fragment = fragment.split("?", 1)[0]
        prefix = prefix.split("?", 1)[0]
        url = prefix if not fragment else url
    if not fragment:
        return url, None
    kind, sep, value = fragment.partition("=")
    if not sep or kind not in kinds:
        return url, None
    return prefix, Fragment(kind, value)


def decode_checksum(algorithm: str, value: str) -> bytes | int | None:
    """Decode one checksum entry; ``SKIP`` and malformed values give None."""
    if value == SKIP:
        return None
    if algorithm == "ck":
        if value.isdigit():
            return int(value)
        logger.warning(f"Malformed cksum '{value}'")
        return None
    try:
        digest = bytes.fromhex(value)
    except ValueError:
        logger.warning(f"Malformed {algorithm}sum '{value}'")
        return None
    expected = DIGEST_SIZES.get(algorithm)
    if expected is not None and len(digest) != expected:
        logger.warning(f"{algorithm}sum '{value}' has {len(digest)} bytes, expected {expected}")
        return None
    return digest


@dataclass
class SourceWithChecksums:
    """A source together with the checksum declared at the same index."""

    source: Source
    checksums: dict[str, bytes | int | None] = field(default_factory=dict)

    def checksum(self, algorithm: str) -> bytes | int | None:
        return self.checksums.get(algorithm)


def pair_sources_with_checksums(category_set: CategorySet) -> list[SourceWithChecksums]:
    """Zip each source with the checksums at its position in every array."""
    paired = []
    for index, definition in enumerate(category_set.source):
        checksums = {
            algorithm: decode_checksum(algorithm, values[index])
            for algorithm, values in category_set.checksums.items()
            if index < len(values)
        }
        paired.append(SourceWithChecksums(Source.parse(definition), checksums))
    return paired
