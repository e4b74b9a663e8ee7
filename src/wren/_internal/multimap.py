"""Read-only multi-valued string mappings.

``MultiValueMapping`` is the structural protocol validators accept.
``MultiDict`` is the shared implementation behind ``Headers``,
``QueryParams`` and ``FormData``: each parses its source once into an
ordered ``name -> [values]`` dict.
"""

from collections.abc import Iterable, Iterator, Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class MultiValueMapping(Protocol):
    """A read-only string mapping where keys can have multiple values.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.
    """

    def __getitem__(self, key: str) -> str: ...
    def __contains__(self, key: object) -> bool: ...
    def __iter__(self) -> Iterator[str]: ...
    def __len__(self) -> int: ...
    def get(self, key: str, default: str | None = None) -> str | None: ...
    def get_list(self, key: str) -> list[str]: ...


class MultiDict(Mapping[str, str]):
    """Immutable ``name -> [values]`` mapping.

    Subclasses override ``_key`` to normalize lookups (headers fold case).
    """

    __slots__ = ("_data",)

    _data: dict[str, list[str]]

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        data: dict[str, list[str]] = {}
        for name, value in pairs:
            data.setdefault(self._key(name), []).append(value)
        object.__setattr__(self, "_data", data)

    def __setattr__(self, name: str, value: object) -> None:
        msg = f"{type(self).__name__} is immutable"
        raise AttributeError(msg)

    @staticmethod
    def _key(name: str) -> str:
        return name

    def __getitem__(self, key: str) -> str:
        return self._data[self._key(key)][0]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._key(key) in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {v!r}" for k, v in self.items())
        return f"{type(self).__name__}({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """First value for *key*, or *default*."""
        values = self._data.get(self._key(key))
        return values[0] if values else default

    def get_list(self, key: str) -> list[str]:
        """Every value for *key*, in arrival order."""
        return list(self._data.get(self._key(key), ()))

    def multi_items(self) -> list[tuple[str, str]]:
        """All ``(name, value)`` pairs, duplicates included."""
        return [(name, value) for name, values in self._data.items() for value in values]

    def to_dict(self) -> dict[str, str]:
        """First value per key, as a plain dict."""
        return {name: values[0] for name, values in self._data.items()}


def as_pairs(source: Iterable[tuple[str, str]] | Mapping[str, str]) -> Iterable[tuple[str, str]]:
    """Accept either a mapping or an iterable of pairs."""
    return source.items() if isinstance(source, Mapping) else source
