# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
WSGI middleware to catch application thrown VFSErrors and return proper
responses.

This is the one place where failure responses are rendered: request
handlers only raise.
"""

import sys
import traceback

from restvfs import util
from restvfs.mw.base_mw import BaseMiddleware
from restvfs.vfs_error import (
    HTTP_INTERNAL_ERROR,
    as_VFSError,
    get_http_status_string,
)

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)


def log_error(e):
    """Log diagnostic details for a VFSError."""
    if e.value >= HTTP_INTERNAL_ERROR:
        _logger.error(f"Caught {e!r}")
        if e.src_exception is not None:
            src = e.src_exception
            tb = "".join(
                traceback.format_exception(
                    type(src), src, src.__traceback__, limit=10
                )
            )
            _logger.error(f"Source exception:\n{tb}")
    else:
        _logger.info(f"Caught {e!r}")


def get_error_response(e, *, is_head=False):
    """Return a tuple (status, headers, body) for a VFSError."""
    content_type, body = e.get_response_page()
    if is_head:
        body = b""
    headers = [
        ("Content-Type", content_type),
        ("Content-Length", str(len(body))),
        ("Date", util.get_rfc1123_time()),
    ]
    return get_http_status_string(e), headers, body


# ========================================================================
# ErrorPrinter
# ========================================================================
class ErrorPrinter(BaseMiddleware):
    def __init__(self, restvfs_app, next_app, config):
        super().__init__(restvfs_app, next_app, config)

    def __call__(self, environ, start_response):
        # Intercept start_response, so we can still send an error response if
        # the handler fails before the first body chunk
        sub_app_start_response = util.SubAppStartResponse()
        response_started = False
        app_iter = None
        try:
            # request_server app may be a generator (for example the GET handler)
            # So we must iterate - not return self.next_app(..)!
            # Otherwise the we could not catch exceptions here.
            app_iter = self.next_app(environ, sub_app_start_response)
            for v in app_iter:
                # Start response (the first time)
                if not response_started:
                    start_response(
                        sub_app_start_response.status,
                        sub_app_start_response.response_headers,
                        sub_app_start_response.exc_info,
                    )
                    response_started = True
                yield v

            # Start response (if it hasn't been done yet)
            if not response_started:
                start_response(
                    sub_app_start_response.status,
                    sub_app_start_response.response_headers,
                    sub_app_start_response.exc_info,
                )
            return
        except Exception as ex:
            e = as_VFSError(ex)
            log_error(e)
            is_head = environ.get("REQUEST_METHOD") == "HEAD"
            status, headers, body = get_error_response(e, is_head=is_head)
            if response_started:
                # Headers may be on the wire already: the server re-raises
                # in this case and aborts the connection
                _logger.warning(f"Error while streaming response body: {e!r}")
                start_response(status, headers, sys.exc_info())
            else:
                start_response(status, headers)
            yield body
        finally:
            # Also called on client disconnect (GeneratorExit)
            if hasattr(app_iter, "close"):
                app_iter.close()
