# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
WSGI application that handles one single RestVFS request.

Expects these values in environ (set by :class:`~restvfs.rest_app.RestVFSApp`):

    environ["restvfs.path"]
        Resource path relative to the mount point, starting with '/'.
        A trailing '/' denotes a container.
    environ["restvfs.bucket_id"]
        Bucket identifier that is passed to the provider.
    environ["restvfs.mount_path"]
        Normalized mount path, e.g. '/fs/'.
"""

import json

from restvfs import conditionals, stream_tools, util
from restvfs.listing_encoder import JsonListingEncoder
from restvfs.vfs_error import (
    EBADREQUEST,
    HTTP_NOT_IMPLEMENTED,
    HTTP_OK,
    get_http_status_string,
)
from restvfs.vfs_provider import ENTRY_ENCODING, ResultKind, VFSOptions

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

DEFAULT_BLOCK_SIZE = 8192

#: POST command field -> (provider method name, options attribute)
POST_COMMANDS = {
    "renameFrom": ("rename", "from_path"),
    "copyFrom": ("copy", "from_path"),
    "linkTo": ("symlink", "target"),
}


# ========================================================================
# RequestServer
# ========================================================================
class RequestServer:
    def __init__(self, vfs_provider, config):
        self._vfsProvider = vfs_provider
        self.block_size = config.get("block_size") or DEFAULT_BLOCK_SIZE
        self.auto_index = config.get("auto_index")

    def __repr__(self):
        return f"{self.__class__.__name__}({self._vfsProvider})"

    def __call__(self, environ, start_response):
        requestmethod = environ["REQUEST_METHOD"]
        options = VFSOptions(environ["restvfs.bucket_id"])

        # HEAD is a GET that only needs the headers
        if requestmethod == "HEAD":
            options.head = True
            requestmethod = "GET"

        # Dispatch HTTP request methods to 'do_METHOD()' handlers
        method = getattr(self, f"do_{requestmethod}", None)
        if not method:
            _logger.error(f"Invalid HTTP method {requestmethod!r}")
            self._fail(
                None,
                f"Unsupported HTTP method {requestmethod!r}",
                status=HTTP_NOT_IMPLEMENTED,
            )

        app_iter = method(environ, start_response, options)
        try:
            yield from app_iter
        finally:
            if hasattr(app_iter, "close"):
                app_iter.close()
        return

    def _fail(self, value, context_info=None, *, src_exception=None, status=None):
        """Wrapper to raise (and log) VFSError."""
        util.fail(value, context_info, src_exception=src_exception, status=status)

    def do_GET(self, environ, start_response, options):
        """Read a file or list a container (also handles HEAD)."""
        path = environ["restvfs.path"]
        provider = self._vfsProvider

        conditionals.add_conditional_options(environ, options)

        if util.is_container_path(path):
            result = None
            if self.auto_index:
                # Try the index file first, fall back to a listing (once)
                try:
                    result = provider.readfile(path + self.auto_index, options)
                except Exception as e:
                    _logger.debug(
                        f"Index {self.auto_index!r} not available in {path!r} ({e!r}): "
                        "sending listing."
                    )
            if result is None:
                options.encoding = ENTRY_ENCODING
                result = provider.readdir(path, options)
        else:
            result = provider.readfile(path, options)

        return self._send_result(environ, start_response, options, result)

    def _send_result(self, environ, start_response, options, result):
        """Send status and headers, then stream the body (if any)."""
        if result.kind is ResultKind.UNSATISFIABLE:
            raise conditionals.get_unsatisfiable_error(result)

        status = get_http_status_string(conditionals.get_response_status(result))
        response_headers = conditionals.get_response_headers(result, options)
        stream = result.stream

        if stream is None or options.head:
            if stream is not None:
                stream_tools.close_stream(stream)
            start_response(status, response_headers)
            yield b""
            return

        if options.structured:
            base = util.make_base_url(
                environ, environ["restvfs.mount_path"], environ["restvfs.path"]
            )
            body = JsonListingEncoder(stream, base)
        else:
            body = stream

        start_response(status, response_headers)
        try:
            for chunk in body:
                yield chunk
        finally:
            # Also releases the provider stream, if the client disconnected
            # before we were done (GeneratorExit)
            stream_tools.close_stream(body)
        return

    def do_PUT(self, environ, start_response, options):
        """Create a container, or create/overwrite a file."""
        path = environ["restvfs.path"]
        provider = self._vfsProvider

        if util.is_container_path(path):
            # A container has no content
            util.read_and_discard_input(environ, self.block_size)
            provider.mkdir(path, options)
        else:
            options.stream = stream_tools.get_body_stream(environ, self.block_size)
            if util.get_content_length(environ) > 0:
                provider.writefile(path, options)
            else:
                provider.mkfile(path, options)

        return util.send_status_response(environ, start_response, HTTP_OK)

    def do_DELETE(self, environ, start_response, options):
        path = environ["restvfs.path"]
        provider = self._vfsProvider
        util.read_and_discard_input(environ, self.block_size)

        if util.is_container_path(path):
            provider.rmdir(path, options)
        else:
            provider.rmfile(path, options)

        return util.send_status_response(environ, start_response, HTTP_OK)

    def do_POST(self, environ, start_response, options):
        """Execute a rename, copy or symlink command.

        The request body is a JSON object with exactly one of these fields::

            {"renameFrom": "/old/path"}
            {"copyFrom": "/source/path"}
            {"linkTo": "target"}
        """
        path = environ["restvfs.path"]
        message = stream_tools.read_json_body(environ, self.block_size)

        commands = [name for name in POST_COMMANDS if message.get(name)]
        if len(commands) != 1:
            self._fail(
                EBADREQUEST,
                "Invalid command in POST: expected exactly one of {}, got {}".format(
                    ", ".join(POST_COMMANDS), json.dumps(message)
                ),
            )
        command = commands[0]
        value = message[command]
        if not isinstance(value, str):
            self._fail(
                EBADREQUEST,
                f"Invalid POST command {command!r}: expected a string, got {json.dumps(value)}",
            )
        method_name, attr_name = POST_COMMANDS[command]
        setattr(options, attr_name, value)

        getattr(self._vfsProvider, method_name)(path, options)

        return util.send_status_response(environ, start_response, HTTP_OK)

    def do_PROPFIND(self, environ, start_response, options):
        """Return the metadata record of a resource as JSON object."""
        path = environ["restvfs.path"]
        result = self._vfsProvider.stat(path, options)

        body = util.to_bytes(json.dumps(result.as_dict(), default=str) + "\n")
        start_response(
            get_http_status_string(HTTP_OK),
            [
                ("Content-Type", "application/json"),
                ("Content-Length", str(len(body))),
                ("Date", util.get_rfc1123_time()),
            ],
        )
        return [body]
