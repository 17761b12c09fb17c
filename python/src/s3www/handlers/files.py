"""Static file handler: turns BucketFS handles into HTTP responses.

Behaves like a conventional static file server over a filesystem:
    - directories are redirected to a trailing-slash URL, then served
      through their index document or an empty listing
    - objects support range requests (206) and conditional requests
      (304 Not Modified, 412 Precondition Failed)
    - the bucket's not-found document is served with a 404 status
"""

import email.utils
import html
import logging
import mimetypes
import posixpath
import re
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from urllib.parse import quote

from fastapi import FastAPI, Request, Response
from fastapi.responses import RedirectResponse, StreamingResponse
from starlette.datastructures import Headers

from s3www import metrics
from s3www.errors import InvalidRange
from s3www.filesystem import BucketFS, FileHandle, FileInfo, ObjectHandle

logger = logging.getLogger(__name__)

INDEX_PAGE = "/index.html"

_LISTING_HEAD = '<!doctype html>\n<meta name="viewport" content="width=device-width">\n<pre>\n'
_LISTING_TAIL = "</pre>\n"


# ---------------------------------------------------------------------------
# Range request parsing
# ---------------------------------------------------------------------------

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


def parse_range_header(header: str | None, total: int) -> tuple[int, int] | None:
    """Parse an HTTP Range header into (start, end) byte offsets.

    Supports three forms:
        - bytes=start-end  (both specified)
        - bytes=start-     (from start to end of file)
        - bytes=-suffix    (last N bytes)

    Args:
        header: The Range header value, e.g. "bytes=0-4".
        total: The total size of the resource in bytes.

    Returns:
        A (start, end) tuple of inclusive byte offsets, or None if the
        header is absent, malformed, or asks for multiple ranges.

    Raises:
        InvalidRange: If the parsed range is not satisfiable.
    """
    if not header or not header.startswith("bytes="):
        return None

    range_spec = header[len("bytes="):].strip()

    # only a single range is supported
    if "," in range_spec:
        return None

    m = _RANGE_RE.match(f"bytes={range_spec}")
    if not m:
        return None

    start_str, end_str = m.group(1), m.group(2)

    if not start_str and not end_str:
        raise InvalidRange(total)

    if not start_str:
        # bytes=-N -> last N bytes
        suffix_length = int(end_str)
        if suffix_length == 0:
            raise InvalidRange(total)
        suffix_length = min(suffix_length, total)
        start = total - suffix_length
        end = total - 1
    elif not end_str:
        # bytes=N- -> from N to end
        start = int(start_str)
        if start >= total:
            raise InvalidRange(total)
        end = total - 1
    else:
        start = int(start_str)
        end = int(end_str)
        if start > end or start >= total:
            raise InvalidRange(total)
        end = min(end, total - 1)

    if end < start:
        raise InvalidRange(total)
    return (start, end)


# ---------------------------------------------------------------------------
# Conditional request evaluation
# ---------------------------------------------------------------------------


def _strip_etag_quotes(etag: str) -> str:
    """Strip surrounding double quotes and an optional W/ prefix from an ETag."""
    etag = etag.strip()
    if etag.startswith("W/"):
        etag = etag[2:]
    if etag.startswith('"') and etag.endswith('"'):
        etag = etag[1:-1]
    return etag


def _parse_http_date(date_str: str) -> datetime | None:
    """Parse an HTTP date string into a timezone-aware datetime, or None."""
    try:
        dt = email.utils.parsedate_to_datetime(date_str)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _truncate(mtime: datetime | None) -> datetime | None:
    """Drop sub-second precision; HTTP dates only carry whole seconds."""
    if mtime is None:
        return None
    if mtime.tzinfo is None:
        mtime = mtime.replace(tzinfo=timezone.utc)
    return mtime.replace(microsecond=0)


def http_date(mtime: datetime) -> str:
    """Format a datetime as an RFC 1123 HTTP date."""
    return email.utils.format_datetime(_truncate(mtime).astimezone(timezone.utc), usegmt=True)


def evaluate_conditionals(
    headers: Headers, etag: str, last_modified: datetime | None
) -> int | None:
    """Evaluate conditional request headers against object metadata.

    Evaluation order (RFC 7232 section 6):
        1. If-Match -> 412 on mismatch
        2. If-Unmodified-Since -> 412 if modified after date (only without If-Match)
        3. If-None-Match -> 304 on match
        4. If-Modified-Since -> 304 if not modified (only without If-None-Match)

    Returns:
        304 or 412 if a condition fails, or None if all conditions pass.
    """
    obj_etag = _strip_etag_quotes(etag)
    obj_mtime = _truncate(last_modified)

    if_match = headers.get("if-match")
    if if_match is not None and if_match.strip() != "*":
        match_tags = [_strip_etag_quotes(t) for t in if_match.split(",")]
        if not obj_etag or obj_etag not in match_tags:
            return 412

    if_unmodified_since = headers.get("if-unmodified-since")
    if if_unmodified_since is not None and if_match is None:
        ius_date = _parse_http_date(if_unmodified_since)
        if ius_date is not None and obj_mtime is not None and obj_mtime > ius_date:
            return 412

    if_none_match = headers.get("if-none-match")
    if if_none_match is not None:
        if if_none_match.strip() == "*":
            return 304
        none_match_tags = [_strip_etag_quotes(t) for t in if_none_match.split(",")]
        if obj_etag and obj_etag in none_match_tags:
            return 304

    if_modified_since = headers.get("if-modified-since")
    if if_modified_since is not None and if_none_match is None:
        ims_date = _parse_http_date(if_modified_since)
        if ims_date is not None and obj_mtime is not None and obj_mtime <= ims_date:
            return 304

    return None


def range_applies(headers: Headers, etag: str, last_modified: datetime | None) -> bool:
    """Check If-Range: a Range header is honoured only if the validator matches."""
    if_range = headers.get("if-range")
    if if_range is None:
        return True
    if_range = if_range.strip()
    if if_range.startswith('"') or if_range.startswith("W/"):
        # weak validators never match for ranges
        return not if_range.startswith("W/") and bool(etag) and (
            _strip_etag_quotes(if_range) == _strip_etag_quotes(etag)
        )
    ir_date = _parse_http_date(if_range)
    mtime = _truncate(last_modified)
    return ir_date is not None and mtime is not None and mtime == ir_date


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def _content_type(info: FileInfo) -> str:
    guessed, _ = mimetypes.guess_type(info.name)
    return guessed or info.content_type or "application/octet-stream"


def plain_response(
    request: Request,
    body: bytes,
    status_code: int,
    media_type: str,
    headers: dict[str, str] | None = None,
) -> Response:
    """A fixed-body response; HEAD gets the same Content-Length but no body."""
    headers = dict(headers or {})
    if request.method == "HEAD":
        headers["Content-Length"] = str(len(body))
        body = b""
    return Response(content=body, status_code=status_code, media_type=media_type, headers=headers)


def not_found_response(request: Request) -> Response:
    return plain_response(
        request,
        b"404 page not found\n",
        404,
        "text/plain; charset=utf-8",
        headers={"X-Content-Type-Options": "nosniff"},
    )


def render_listing(entries: list[FileInfo]) -> bytes:
    lines = [_LISTING_HEAD]
    for entry in sorted(entries, key=lambda e: e.name):
        name = entry.name + "/" if entry.is_dir else entry.name
        lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>\n')
    lines.append(_LISTING_TAIL)
    return "".join(lines).encode()


def _redirect(request: Request, location: str) -> Response:
    query = request.url.query
    if query:
        location = f"{location}?{query}"
    return RedirectResponse(location, status_code=301)


async def _counting(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    sent = 0
    try:
        async for chunk in chunks:
            sent += len(chunk)
            yield chunk
    finally:
        metrics.record_bytes_sent(sent)


class FileHandler:
    """Serves GET and HEAD requests from a BucketFS.

    Attributes:
        app: The parent FastAPI application; the filesystem is read from
            ``app.state.fs`` so it can be swapped at startup or in tests.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    @property
    def fs(self) -> BucketFS:
        return self.app.state.fs

    async def serve(self, request: Request) -> Response:
        """Serve the file or directory named by the request URL path."""
        upath = request.url.path
        if not upath.startswith("/"):
            upath = "/" + upath

        if upath.endswith(INDEX_PAGE):
            return _redirect(request, upath[: -len(INDEX_PAGE)] + "/")

        name = posixpath.normpath(upath)
        if name.startswith("//"):
            name = "/" + name.lstrip("/")

        try:
            handle = await self.fs.open(name)
        except FileNotFoundError:
            return not_found_response(request)

        try:
            return await self._serve_handle(request, upath, name, handle)
        finally:
            await handle.close()

    async def _serve_handle(
        self, request: Request, upath: str, name: str, handle: FileHandle
    ) -> Response:
        info = handle.stat()
        if not info.is_dir:
            if handle.is_not_found_document:
                return self._serve_object(request, handle, info, status=404)
            if upath != "/" and upath.endswith("/"):
                return _redirect(request, upath.rstrip("/"))
            return self._serve_object(request, handle, info)

        if not upath.endswith("/"):
            return _redirect(request, upath + "/")

        index_name = name.rstrip("/") + INDEX_PAGE
        try:
            index = await self.fs.open(index_name)
        except FileNotFoundError:
            return await self._serve_listing(request, handle)

        try:
            index_info = index.stat()
            if index_info.is_dir:
                return await self._serve_listing(request, handle)
            status = 404 if index.is_not_found_document else 200
            return self._serve_object(request, index, index_info, status=status)
        finally:
            await index.close()

    async def _serve_listing(self, request: Request, handle: FileHandle) -> Response:
        entries = await handle.readdir()
        return plain_response(request, render_listing(entries), 200, "text/html; charset=utf-8")

    def _serve_object(
        self, request: Request, handle: ObjectHandle, info: FileInfo, status: int = 200
    ) -> Response:
        """Build the response for an object from its ``stat()`` info.

        The not-found document (status 404) ignores range and conditional
        headers.
        """
        total_size = info.size
        headers: dict[str, str] = {"Accept-Ranges": "bytes"}
        if info.etag:
            headers["ETag"] = info.etag
        if info.modified is not None:
            headers["Last-Modified"] = http_date(info.modified)
        media_type = _content_type(info)

        if status == 200:
            cond_status = evaluate_conditionals(request.headers, info.etag, info.modified)
            if cond_status == 304:
                not_modified = {k: v for k, v in headers.items() if k != "Accept-Ranges"}
                return Response(status_code=304, headers=not_modified)
            if cond_status == 412:
                return Response(status_code=412)

            range_header = request.headers.get("range")
            if range_header and range_applies(request.headers, info.etag, info.modified):
                try:
                    parsed_range = parse_range_header(range_header, total_size)
                except InvalidRange:
                    return plain_response(
                        request,
                        b"invalid range\n",
                        416,
                        "text/plain; charset=utf-8",
                        headers={"Content-Range": f"bytes */{total_size}"},
                    )
                if parsed_range is not None:
                    start, end = parsed_range
                    content_length = end - start + 1
                    headers["Content-Range"] = f"bytes {start}-{end}/{total_size}"
                    return self._body(
                        request, handle, 206, headers, media_type, start, content_length
                    )

        return self._body(request, handle, status, headers, media_type, 0, total_size)

    def _body(
        self,
        request: Request,
        handle: ObjectHandle,
        status: int,
        headers: dict[str, str],
        media_type: str,
        start: int,
        length: int,
    ) -> Response:
        headers["Content-Length"] = str(length)
        if request.method == "HEAD" or length == 0:
            return Response(status_code=status, headers=headers, media_type=media_type)
        handle.seek(start)
        return StreamingResponse(
            content=_counting(handle.stream(length)),
            status_code=status,
            headers=headers,
            media_type=media_type,
        )
