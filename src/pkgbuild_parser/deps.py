"""Dependency and provide expressions as found in depends-like arrays."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .models import Version
from .version import Ordering, compare


class DependencyOrder(str, Enum):
    """Version constraint operator."""

    GREATER = ">"
    GREATER_OR_EQUAL = ">="
    EQUAL = "="
    LESS_OR_EQUAL = "<="
    LESS = "<"

    def accepts(self, ordering: Ordering) -> bool:
        """Whether ``candidate <op> constraint`` holds for a comparison result."""
        return ordering in _ACCEPTED[self]


_ACCEPTED = {
    DependencyOrder.GREATER: {Ordering.GREATER},
    DependencyOrder.GREATER_OR_EQUAL: {Ordering.GREATER, Ordering.EQUAL},
    DependencyOrder.EQUAL: {Ordering.EQUAL},
    DependencyOrder.LESS_OR_EQUAL: {Ordering.LESS, Ordering.EQUAL},
    DependencyOrder.LESS: {Ordering.LESS},
}

# Two-character operators must be tried first
_OPERATORS = (
    DependencyOrder.GREATER_OR_EQUAL,
    DependencyOrder.LESS_OR_EQUAL,
    DependencyOrder.EQUAL,
    DependencyOrder.GREATER,
    DependencyOrder.LESS,
)


@dataclass(frozen=True)
class Dependency:
    """``name[<op>version][: description]``, e.g. ``glibc>=2.38``.

    The description part only appears in ``optdepends``.
    """

    name: str
    order: DependencyOrder | None = None
    version: Version | None = None
    description: str | None = None

    @classmethod
    def parse(cls, value: str) -> Dependency:
        description = None
        if ": " in value:
            value, description = value.split(": ", 1)
        for order in _OPERATORS:
            if order.value in value:
                name, version = value.split(order.value, 1)
                if not name:
                    raise ValueError(f"Dependency '{value}' has no name")
                return cls(name, order, Version.parse(version), description)
        return cls(value, description=description)

    def is_satisfied_by(self, version: Version) -> bool:
        """Check a candidate version against this constraint.

        A constraint without a pkgrel ignores the candidate's pkgrel.
        """
        if self.order is None or self.version is None:
            return True
        if not self.version.pkgrel:
            version = version.model_copy(update={"pkgrel": ""})
        return self.order.accepts(compare(version, self.version))

    def __str__(self) -> str:
        text = self.name
        if self.order is not None and self.version is not None:
            text += f"{self.order.value}{self.version}"
        if self.description is not None:
            text += f": {self.description}"
        return text


@dataclass(frozen=True)
class Provide:
    """``name[=version]`` from a provides array."""

    name: str
    version: Version | None = None

    @classmethod
    def parse(cls, value: str) -> Provide:
        if "<" in value or ">" in value:
            raise ValueError(f"Provide '{value}' contains illegal > or <")
        if "=" in value:
            name, version = value.split("=", 1)
            return cls(name, Version.parse(version))
        return cls(value)

    def __str__(self) -> str:
        if self.version is None:
            return self.name
        return f"{self.name}={self.version}"
