"""Query string parameters."""

from urllib.parse import parse_qsl

from wren._internal.multimap import MultiDict


class QueryParams(MultiDict):
    """Immutable, parsed query string.

    Raw bytes and percent escapes are decoded as UTF-8. Blank values
    are kept (``?flag=`` gives ``""``). Repeated keys keep every value
    in order; ``query["tag"]`` is the first.
    """

    __slots__ = ("_raw",)

    def __init__(self, query_string: bytes | str = b"") -> None:
        if isinstance(query_string, str):
            query_string = query_string.encode("utf-8")
        text = query_string.decode("utf-8", errors="replace")
        super().__init__(parse_qsl(text, keep_blank_values=True))
        object.__setattr__(self, "_raw", query_string)

    @property
    def raw(self) -> bytes:
        """The undecoded query string."""
        return self._raw

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """Value as int; *default* when missing or not numeric."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool | None = None) -> bool | None:
        """``true``, ``1``, ``yes`` and ``on`` are True; anything else False."""
        value = self.get(key)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")
