"""Request headers.

Built from the raw byte pairs of the ASGI scope. Names are folded to
lowercase once, at construction; values are decoded as latin-1.
"""

from collections.abc import Iterable, Mapping

from wren._internal.multimap import MultiDict, as_pairs


class Headers(MultiDict):
    """Immutable, case-insensitive request headers.

    ``headers["Accept"]`` returns the first value; ``get_list`` returns
    every value, e.g. for repeated ``Accept`` or ``X-Forwarded-For``.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        super().__init__(
            (name.decode("latin-1"), value.decode("latin-1")) for name, value in raw
        )
        object.__setattr__(self, "_raw", raw)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]] | Mapping[str, str]) -> "Headers":
        """Build headers from text pairs (or a dict) instead of raw bytes."""
        return cls(
            tuple(
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in as_pairs(pairs)
            )
        )

    @staticmethod
    def _key(name: str) -> str:
        return name.lower()

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """The byte pairs as received from the server."""
        return self._raw
