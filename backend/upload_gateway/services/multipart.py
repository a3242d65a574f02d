"""Incremental multipart/form-data decoding.

The body is fed to ``python_multipart.MultipartParser`` one network chunk at a
time. Parser callbacks only record events; the events are applied after each
``write`` so that validation errors surface between chunks and no further
bytes are pulled from the stream once a part is rejected.

Only the first file part sent under the expected field name is buffered.
Any later file parts are drained: read to the end of the body, counted and
discarded.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from enum import Enum, auto

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect

from upload_gateway.core.errors import IncompleteError, ParseError
from upload_gateway.services.policy import UploadPolicy

logger = logging.getLogger(__name__)

DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class UploadedPart:
    field_name: str
    filename: str | None
    content_type: str
    payload: bytes
    size: int
    drained: bool = False


class _Event(Enum):
    PART_BEGIN = auto()
    PART_DATA = auto()
    PART_END = auto()
    HEADER_FIELD = auto()
    HEADER_VALUE = auto()
    HEADER_END = auto()
    HEADERS_FINISHED = auto()
    END = auto()


@dataclass
class _PartState:
    headers: dict[bytes, bytes] = field(default_factory=dict)
    field_name: str = ""
    filename: str | None = None
    content_type: str = ""
    size: int = 0
    kept: bool = False
    is_file: bool = False
    buffer: bytearray = field(default_factory=bytearray)


def parse_boundary(content_type_header: str | None) -> bytes:
    if not content_type_header:
        raise ParseError("Missing Content-Type header")
    media_type, params = parse_options_header(content_type_header)
    if media_type != b"multipart/form-data":
        raise ParseError("Expected a multipart/form-data request body")
    boundary = params.get(b"boundary")
    if not boundary:
        raise ParseError("Missing multipart boundary")
    return boundary


class MultipartStreamParser:
    def __init__(
        self,
        content_type_header: str | None,
        policy: UploadPolicy,
        field_name: str = "file",
    ) -> None:
        self.boundary = parse_boundary(content_type_header)
        self.policy = policy
        self.field_name = field_name
        self._events: list[tuple[_Event, bytes]] = []
        self._current: _PartState | None = None
        self._header_field = b""
        self._header_value = b""
        self._kept_seen = False
        self._finished = False
        self._started = False

    def _callbacks(self) -> dict:
        def data_event(event: _Event):
            def callback(data: bytes, start: int, end: int) -> None:
                self._events.append((event, data[start:end]))

            return callback

        def plain_event(event: _Event):
            def callback() -> None:
                self._events.append((event, b""))

            return callback

        return {
            "on_part_begin": plain_event(_Event.PART_BEGIN),
            "on_part_data": data_event(_Event.PART_DATA),
            "on_part_end": plain_event(_Event.PART_END),
            "on_header_field": data_event(_Event.HEADER_FIELD),
            "on_header_value": data_event(_Event.HEADER_VALUE),
            "on_header_end": plain_event(_Event.HEADER_END),
            "on_headers_finished": plain_event(_Event.HEADERS_FINISHED),
            "on_end": plain_event(_Event.END),
        }

    async def parse(self, stream: AsyncIterable[bytes]) -> AsyncIterator[UploadedPart]:
        if self._started:
            raise RuntimeError("MultipartStreamParser can only parse one stream")
        self._started = True

        parser = MultipartParser(self.boundary, self._callbacks())
        try:
            async for chunk in stream:
                if not chunk:
                    continue
                try:
                    parser.write(chunk)
                except MultipartParseError as exc:
                    raise ParseError(f"Malformed multipart body: {exc}") from exc
                for part in self._apply_events():
                    yield part
        except ClientDisconnect as exc:
            raise IncompleteError("Client disconnected before the upload finished") from exc

        if not self._finished:
            raise IncompleteError("Request body ended before the closing multipart boundary")

    def _apply_events(self) -> list[UploadedPart]:
        completed: list[UploadedPart] = []
        events, self._events = self._events, []
        for event, data in events:
            if event is _Event.PART_BEGIN:
                self._current = _PartState()
            elif event is _Event.HEADER_FIELD:
                self._header_field += data
            elif event is _Event.HEADER_VALUE:
                self._header_value += data
            elif event is _Event.HEADER_END:
                self._require_part().headers[self._header_field.lower()] = self._header_value
                self._header_field = b""
                self._header_value = b""
            elif event is _Event.HEADERS_FINISHED:
                self._start_part(self._require_part())
            elif event is _Event.PART_DATA:
                self._feed_part(self._require_part(), data)
            elif event is _Event.PART_END:
                part = self._finish_part(self._require_part())
                if part is not None:
                    completed.append(part)
                self._current = None
            elif event is _Event.END:
                self._finished = True
        return completed

    def _require_part(self) -> _PartState:
        if self._current is None:
            raise ParseError("Malformed multipart body: data outside of a part")
        return self._current

    def _start_part(self, part: _PartState) -> None:
        disposition = part.headers.get(b"content-disposition")
        if disposition is None:
            raise ParseError("Multipart part is missing its Content-Disposition header")
        _, options = parse_options_header(disposition)
        name = options.get(b"name")
        if name is None:
            raise ParseError('Content-Disposition is missing the "name" parameter')

        part.field_name = name.decode("utf-8", errors="replace")
        filename = options.get(b"filename")
        if filename:
            part.filename = filename.decode("utf-8", errors="replace")
            part.is_file = True
        raw_type = part.headers.get(b"content-type")
        part.content_type = (
            raw_type.decode("latin-1").strip() if raw_type else DEFAULT_FILE_CONTENT_TYPE
        )

        if part.is_file and not self._kept_seen and part.field_name == self.field_name:
            part.kept = True
            self._kept_seen = True
            self.policy.check_type(part.content_type)

    def _feed_part(self, part: _PartState, data: bytes) -> None:
        part.size += len(data)
        if part.kept:
            self.policy.check_size(part.size)
            part.buffer.extend(data)

    def _finish_part(self, part: _PartState) -> UploadedPart | None:
        if not part.is_file:
            return None
        if not part.kept:
            logger.debug(
                "Discarded extra file part %r (%s, %d bytes)",
                part.field_name,
                part.filename,
                part.size,
            )
        return UploadedPart(
            field_name=part.field_name,
            filename=part.filename,
            content_type=part.content_type,
            payload=bytes(part.buffer) if part.kept else b"",
            size=part.size,
            drained=not part.kept,
        )
