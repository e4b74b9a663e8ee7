"""Form body parsing: URL-encoded and multipart.

URL-encoded bodies go through ``urllib.parse``; multipart bodies are
fed to ``python-multipart``'s streaming parser and collected in memory.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from python_multipart.multipart import MultipartParser, parse_options_header

from wren._internal.multimap import MultiDict

URLENCODED = "application/x-www-form-urlencoded"
MULTIPART = "multipart/form-data"


@dataclass(frozen=True, slots=True)
class UploadFile:
    """A file part of a multipart body, held in memory."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    def __repr__(self) -> str:
        return f"UploadFile({self.filename!r}, {self.content_type!r}, {self.size} bytes)"


class FormData(MultiDict):
    """Parsed form fields plus uploaded files.

    Text fields behave like ``QueryParams``; file parts are kept apart
    in ``files`` so a validator schema only ever sees strings::

        form = await ctx.req.form()
        form["username"], form.get_list("tags"), form.files.get("avatar")
    """

    __slots__ = ("_files",)

    def __init__(
        self,
        pairs: Iterable[tuple[str, str]] = (),
        files: Mapping[str, UploadFile] | None = None,
    ) -> None:
        super().__init__(pairs)
        object.__setattr__(self, "_files", dict(files or {}))

    @property
    def files(self) -> Mapping[str, UploadFile]:
        """Uploaded files by field name."""
        return self._files


def media_type(content_type: str | None) -> str:
    """``"Multipart/Form-Data; boundary=x"`` -> ``"multipart/form-data"``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_form_content_type(content_type: str | None) -> bool:
    return media_type(content_type) in (URLENCODED, MULTIPART)


async def parse_form_data(body: bytes, content_type: str) -> FormData:
    """Parse a form body.

    Raises:
        ValueError: The content type is not a form encoding, or the
            body is not valid for it.
    """
    match media_type(content_type):
        case "application/x-www-form-urlencoded":
            return FormData(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
        case "multipart/form-data":
            return _parse_multipart(body, content_type)
    msg = f"Unsupported form content type: {content_type!r}"
    raise ValueError(msg)


def _parse_multipart(body: bytes, content_type: str) -> FormData:
    _, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if not boundary:
        msg = "Multipart form data missing boundary parameter"
        raise ValueError(msg)

    fields: list[tuple[str, str]] = []
    files: dict[str, UploadFile] = {}

    # State of the part being parsed
    part_headers: dict[str, str] = {}
    header_name = bytearray()
    header_value = bytearray()
    content = bytearray()

    def on_part_begin() -> None:
        part_headers.clear()
        content.clear()

    def on_part_data(chunk: bytes, start: int, end: int) -> None:
        content.extend(chunk[start:end])

    def on_header_field(chunk: bytes, start: int, end: int) -> None:
        header_name.extend(chunk[start:end])

    def on_header_value(chunk: bytes, start: int, end: int) -> None:
        header_value.extend(chunk[start:end])

    def on_header_end() -> None:
        part_headers[header_name.decode("latin-1").lower()] = header_value.decode("latin-1")
        header_name.clear()
        header_value.clear()

    def on_part_end() -> None:
        _, params = parse_options_header(part_headers.get("content-disposition", ""))
        name = params.get(b"name")
        if name is None:
            return
        filename = params.get(b"filename")
        if filename is None:
            fields.append((name.decode("utf-8"), content.decode("utf-8", errors="replace")))
            return
        files[name.decode("utf-8")] = UploadFile(
            filename=filename.decode("utf-8"),
            content_type=part_headers.get("content-type", "application/octet-stream"),
            content=bytes(content),
        )

    callbacks: dict[str, Any] = {
        "on_part_begin": on_part_begin,
        "on_part_data": on_part_data,
        "on_part_end": on_part_end,
        "on_header_field": on_header_field,
        "on_header_value": on_header_value,
        "on_header_end": on_header_end,
    }
    parser = MultipartParser(boundary, callbacks)
    parser.write(body)
    parser.finalize()
    return FormData(fields, files)
