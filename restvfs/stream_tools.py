# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Request body sources and stream helpers.

A request body reaches RestVFS in one of two forms:

  - still streaming: it is read from ``environ["wsgi.input"]`` in chunks of
    `block_size` bytes (:func:`wsgi_input_stream`),
  - already received: an upstream component (e.g. a framework or a body
    parsing middleware) stored the complete body in
    ``environ["restvfs.content"]`` (:func:`buffered_stream`).

Both are passed to providers as a plain iterable of bytes.
"""

import json

from restvfs import util
from restvfs.vfs_error import EBADREQUEST

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

#: environ key for a request body that was already read by an upstream component
CONTENT_KEY = "restvfs.content"


def wsgi_input_stream(environ, block_size):
    """Yield the request body from wsgi.input in chunks."""
    remaining = util.get_content_length(environ)
    wsgi_input = environ["wsgi.input"]
    while remaining > 0:
        buf = wsgi_input.read(min(block_size, remaining))
        if not buf:
            break
        environ["restvfs.some_input_read"] = 1
        remaining -= len(buf)
        yield buf
    environ["restvfs.all_input_read"] = 1


def buffered_stream(content):
    """Yield an already received body as one single chunk."""
    if isinstance(content, (dict, list)):
        content = json.dumps(content)
    content = util.to_bytes(content)
    if content:
        yield content


def get_body_stream(environ, block_size):
    """Return an iterable of bytes for the request body (buffered or live)."""
    if CONTENT_KEY in environ:
        return buffered_stream(environ[CONTENT_KEY])
    return wsgi_input_stream(environ, block_size)


def read_json_body(environ, block_size):
    """Return the request body parsed as JSON object.

    Raises VFSError(EBADREQUEST) if the body is not a JSON object.
    """
    content = environ.get(CONTENT_KEY)
    if not isinstance(content, dict):
        if content is None:
            content = b"".join(wsgi_input_stream(environ, block_size))
        try:
            content = json.loads(util.to_str(content))
        except ValueError as e:
            util.fail(EBADREQUEST, f"Invalid JSON body: {e}", src_exception=e)
    if not isinstance(content, dict):
        util.fail(EBADREQUEST, f"Expected a JSON object, got {type(content).__name__}")
    return content


def close_stream(stream):
    """Release a provider stream (e.g. when the client disconnected)."""
    close = getattr(stream, "close", None)
    if close is not None:
        close()
