#!/usr/bin/env python3
"""Case-insensitive, multi-valued HTTP header container.

Names are stored in canonical form ("content-type" -> "Content-Type",
"ETag" -> "Etag") so responses are written consistently no matter how a
hosting rule spelled them.

Example:
    >>> headers = Headers()
    >>> headers["cache-control"] = "no-cache"
    >>> headers["Cache-Control"] = "max-age=60"
    >>> headers.items()
    [('Cache-Control', 'max-age=60')]
"""

from typing import Dict, Iterable, Iterator, List, MutableMapping, Optional, Tuple


def canonical_header(name: str) -> str:
    """Canonicalize a header name: first letter and letters after "-" upper."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


class Headers(MutableMapping[str, str]):
    """Ordered header mapping keyed case-insensitively.

    Item assignment replaces every value of a header; add() appends one.
    Reading an item returns the first value.
    """

    def __init__(self, pairs: Optional[Iterable[Tuple[str, str]]] = None):
        self._values: Dict[str, List[str]] = {}
        for name, value in pairs or ():
            self.add(name, value)

    def add(self, name: str, value: str) -> None:
        """Append a value for name."""
        self._values.setdefault(canonical_header(name), []).append(value)

    def get_all(self, name: str) -> List[str]:
        """All values for name, in arrival order."""
        return list(self._values.get(canonical_header(name), ()))

    def items(self) -> List[Tuple[str, str]]:  # type: ignore[override]
        """Every (name, value) pair, repeated names included."""
        return [(name, value) for name, values in self._values.items() for value in values]

    def copy(self) -> "Headers":
        return Headers(self.items())

    def __getitem__(self, name: str) -> str:
        values = self._values.get(canonical_header(name))
        if not values:
            raise KeyError(name)
        return values[0]

    def __setitem__(self, name: str, value: str) -> None:
        self._values[canonical_header(name)] = [value]

    def __delitem__(self, name: str) -> None:
        del self._values[canonical_header(name)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_header(name) in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Headers({self.items()!r})"
