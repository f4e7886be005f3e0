"""
Streaming multipart/form-data reader.

The request body is fed chunk by chunk into python-multipart's callback
parser. Text parts are collected in memory (bounded by ``max_field_bytes``),
expected file parts are written straight to the request's staging area and
any other file part is dropped on the floor.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, BinaryIO, Dict, Iterable, List, Optional, Set, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from src.ingestion.errors import MalformedBody
from src.utils.staging import StagingArea

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "application/octet-stream"

_OPEN, _WRITE, _CLOSE = "open", "write", "close"


@dataclass
class StagedFile:
    field_name: str
    filename: Optional[str]
    media_type: str
    path: str
    size: int = 0


@dataclass
class ParsedForm:
    fields: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, StagedFile] = field(default_factory=dict)


def _decode(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return value.decode("latin-1")


def _client_filename(raw: bytes) -> Optional[str]:
    # browsers on Windows may still send a full path
    name = os.path.basename(_decode(raw).replace("\\", "/")).strip()
    return name or None


def boundary_from_content_type(content_type: Optional[str]) -> bytes:
    if not content_type:
        raise MalformedBody("Missing Content-Type header, expected multipart/form-data.")
    media_type, params = parse_options_header(content_type)
    if media_type != b"multipart/form-data":
        raise MalformedBody(f"Unsupported Content-Type '{_decode(media_type)}', expected multipart/form-data.")
    boundary = params.get(b"boundary")
    if not boundary:
        raise MalformedBody("Multipart Content-Type header has no boundary.")
    return boundary


class MultipartFormReader:
    """
    Parser callbacks run synchronously inside ``parser.write``, so they only
    record what happened. Disk work for file parts is queued and carried out
    by ``flush`` in the threadpool.
    """

    def __init__(
        self,
        boundary: bytes,
        staging: StagingArea,
        file_fields: Iterable[str],
        max_field_bytes: int,
    ):
        self.staging = staging
        self.file_fields = set(file_fields)
        self.max_field_bytes = max_field_bytes
        self.form = ParsedForm()
        self.finished = False

        self._header_field = bytearray()
        self._header_value = bytearray()
        self._headers: Dict[bytes, bytes] = {}
        self._field_name: Optional[str] = None
        self._field_value = bytearray()
        self._staged: Optional[StagedFile] = None
        self._claimed: Set[str] = set()
        self._pending: List[Tuple[str, object]] = []
        self._file: Optional[BinaryIO] = None

        self.parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self.on_part_begin,
                "on_part_data": self.on_part_data,
                "on_part_end": self.on_part_end,
                "on_header_field": self.on_header_field,
                "on_header_value": self.on_header_value,
                "on_header_end": self.on_header_end,
                "on_headers_finished": self.on_headers_finished,
                "on_end": self.on_end,
            },
        )

    def on_part_begin(self) -> None:
        self._headers = {}
        self._field_name = None
        self._field_value = bytearray()
        self._staged = None

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        disposition = self._headers.get(b"content-disposition")
        if disposition is None:
            raise MalformedBody("Multipart part is missing its Content-Disposition header.")
        _, options = parse_options_header(disposition)
        if b"name" not in options:
            raise MalformedBody("Multipart part has no field name.")
        name = _decode(options[b"name"])

        if b"filename" not in options:
            self._field_name = name
            return

        if name not in self.file_fields or name in self._claimed:
            logger.debug("Discarding unexpected file part %r", name)
            return

        self._claimed.add(name)
        self._staged = StagedFile(
            field_name=name,
            filename=_client_filename(options[b"filename"]),
            media_type=_decode(self._headers.get(b"content-type", b"")).strip() or DEFAULT_MEDIA_TYPE,
            path="",
        )
        self._pending.append((_OPEN, self._staged))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        chunk = data[start:end]
        if self._staged is not None:
            self._staged.size += len(chunk)
            self._pending.append((_WRITE, chunk))
        elif self._field_name is not None:
            self._field_value += chunk
            if len(self._field_value) > self.max_field_bytes:
                raise MalformedBody(
                    f"Form field '{self._field_name}' exceeds {self.max_field_bytes} bytes."
                )

    def on_part_end(self) -> None:
        if self._staged is not None:
            self._pending.append((_CLOSE, self._staged))
        elif self._field_name is not None:
            # repeated fields keep their first value
            self.form.fields.setdefault(self._field_name, _decode(bytes(self._field_value)))

    def on_end(self) -> None:
        self.finished = True

    async def flush(self) -> None:
        pending, self._pending = self._pending, []
        for action, value in pending:
            if action == _OPEN:
                suffix = os.path.splitext(value.filename)[1] if value.filename else ""
                self._file = await run_in_threadpool(self.staging.open_file, suffix=suffix)
                value.path = self._file.name
            elif action == _WRITE:
                await run_in_threadpool(self._file.write, value)
            else:
                await run_in_threadpool(self._file.close)
                self._file = None
                self.form.files[value.field_name] = value
                logger.info("Staged %s (%s, %d bytes)", value.field_name, value.media_type, value.size)


async def read_multipart_form(
    body: AsyncIterable[bytes],
    content_type: Optional[str],
    staging: StagingArea,
    file_fields: Iterable[str],
    max_field_bytes: int = 1024 * 1024,
) -> ParsedForm:
    """
    Parse a streamed multipart body.

    Raises:
        MalformedBody: wrong content type, broken framing, a body that stops
            before the closing boundary, or a client disconnect.
    """
    boundary = boundary_from_content_type(content_type)
    reader = MultipartFormReader(boundary, staging, file_fields, max_field_bytes)

    try:
        async for chunk in body:
            if chunk:
                reader.parser.write(chunk)
                await reader.flush()
        reader.parser.finalize()
        await reader.flush()
    except MultipartParseError as exc:
        raise MalformedBody("Request body is not valid multipart data.", details=str(exc)) from exc
    except ClientDisconnect as exc:
        raise MalformedBody("Client disconnected before the upload finished.") from exc

    if not reader.finished:
        raise MalformedBody("Request body ended before the closing multipart boundary.")
    return reader.form
