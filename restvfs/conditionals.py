# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Conditional and range request negotiation.

Request side: translate `If-None-Match`, `Range` and `If-Range` headers into
:class:`~restvfs.vfs_provider.VFSOptions` fields.

Response side: translate a :class:`~restvfs.vfs_provider.VFSResult` into the
status code and the `ETag`, `Content-Type`, `Content-Length` and
`Content-Range` headers.

No byte range arithmetic happens here: only the provider knows the true
resource size, so it decides whether a range can be satisfied.
"""

import re

from restvfs import util
from restvfs.vfs_error import (
    HTTP_NOT_MODIFIED,
    HTTP_OK,
    HTTP_PARTIAL_CONTENT,
    HTTP_RANGE_NOT_SATISFIABLE,
    as_VFSError,
)
from restvfs.vfs_provider import ResultKind, VFSRange

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

# Range Specifier: <unit>=<start>-<end>, both bounds optional
reRangeSpecifier = re.compile(r"^\s*([A-Za-z]+)\s*=\s*([0-9]*)\s*-\s*([0-9]*)\s*$")


def parse_range_header(range_header, if_range=None):
    """Return a VFSRange for a `Range` header value (or None if invalid).

    Only the first range of a multi-range header is used, since multipart
    responses are not supported.
    Both bounds may be omitted ('bytes=-'): the provider decides what such a
    range means for the resource.
    """
    first = range_header.split(",", 1)[0]
    match = reRangeSpecifier.match(first)
    if not match:
        return None
    _unit, start, end = match.groups()
    return VFSRange(
        int(start) if start else None,
        int(end) if end else None,
        etag=util.unquote_etag(if_range) if if_range else None,
    )


def add_conditional_options(environ, options):
    """Set `etag` and `range` fields of `options` from the request headers."""
    if_none_match = environ.get("HTTP_IF_NONE_MATCH")
    if if_none_match is not None:
        options.etag = util.parse_if_match_header(if_none_match)

    range_header = environ.get("HTTP_RANGE")
    if range_header:
        options.range = parse_range_header(range_header, environ.get("HTTP_IF_RANGE"))
        if options.range is None:
            _logger.info(f"Ignoring invalid Range header {range_header!r}")
    return options


def get_response_status(result):
    """Return the HTTP status for a successful read result."""
    if result.kind is ResultKind.NOT_MODIFIED:
        return HTTP_NOT_MODIFIED
    elif result.kind is ResultKind.PARTIAL:
        return HTTP_PARTIAL_CONTENT
    elif result.kind is ResultKind.UNSATISFIABLE:
        return HTTP_RANGE_NOT_SATISFIABLE
    return HTTP_OK


def get_unsatisfiable_error(result):
    """Return the VFSError that is carried by an UNSATISFIABLE result."""
    assert result.kind is ResultKind.UNSATISFIABLE
    error = result.error or "Requested range not satisfiable"
    return as_VFSError(error, status=HTTP_RANGE_NOT_SATISFIABLE)


def get_response_headers(result, options):
    """Return a list of response headers for a successful read result.

    Entity headers are only added if the result carries a body stream, or
    if this is a HEAD request (but never for 304 responses).
    """
    headers = [("Date", util.get_rfc1123_time())]
    if result.etag is not None:
        headers.append(("ETag", util.quote_etag(result.etag)))

    if result.kind is ResultKind.NOT_MODIFIED:
        return headers
    if result.stream is None and not options.head:
        headers.append(("Content-Length", "0"))
        return headers

    if options.structured:
        headers.append(("Content-Type", "application/json"))
    elif result.mime:
        headers.append(("Content-Type", result.mime))

    # The encoded length of a listing is not known in advance
    if result.size is not None and not options.structured:
        headers.append(("Content-Length", str(result.size)))
        if result.kind is ResultKind.PARTIAL:
            start, end, size = result.partial
            headers.append(("Content-Range", f"bytes {start}-{end}/{size}"))
    return headers
