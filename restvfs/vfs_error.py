# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Implements a VFSError class that is used to signal storage and HTTP errors.

Providers classify failures with one of the error codes below; the
:class:`~restvfs.error_printer.ErrorPrinter` middleware turns them into
HTTP responses.
"""

__docformat__ = "reStructuredText"

# ========================================================================
# List of HTTP Response Codes.
# ========================================================================
HTTP_OK = 200
HTTP_CREATED = 201
HTTP_NO_CONTENT = 204
HTTP_PARTIAL_CONTENT = 206

HTTP_NOT_MODIFIED = 304

HTTP_BAD_REQUEST = 400
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_METHOD_NOT_ALLOWED = 405
HTTP_RANGE_NOT_SATISFIABLE = 416

HTTP_INTERNAL_ERROR = 500
HTTP_NOT_IMPLEMENTED = 501
HTTP_SERVICE_UNAVAILABLE = 503

# ========================================================================
# Status lines (code + reason phrase) as passed to start_response().
# ========================================================================
ERROR_DESCRIPTIONS = {
    HTTP_OK: "200 OK",
    HTTP_CREATED: "201 Created",
    HTTP_NO_CONTENT: "204 No Content",
    HTTP_PARTIAL_CONTENT: "206 Partial Content",
    HTTP_NOT_MODIFIED: "304 Not Modified",
    HTTP_BAD_REQUEST: "400 Bad Request",
    HTTP_FORBIDDEN: "403 Forbidden",
    HTTP_NOT_FOUND: "404 Not Found",
    HTTP_METHOD_NOT_ALLOWED: "405 Method Not Allowed",
    HTTP_RANGE_NOT_SATISFIABLE: "416 Range Not Satisfiable",
    HTTP_INTERNAL_ERROR: "500 Internal Server Error",
    HTTP_NOT_IMPLEMENTED: "501 Not Implemented",
    HTTP_SERVICE_UNAVAILABLE: "503 Service Unavailable",
}

# ========================================================================
# Default detail text, used when an error carries no context info.
# ========================================================================
ERROR_RESPONSES = {
    HTTP_BAD_REQUEST: "An invalid request was specified",
    HTTP_NOT_FOUND: "The specified resource was not found",
    HTTP_FORBIDDEN: "Access denied to the specified resource",
    HTTP_RANGE_NOT_SATISFIABLE: "The requested range cannot be served",
    HTTP_INTERNAL_ERROR: "An internal server error occurred",
    HTTP_NOT_IMPLEMENTED: "Not implemented",
    HTTP_SERVICE_UNAVAILABLE: "The storage backend is not ready",
}

# ========================================================================
# Error codes used by providers
# ========================================================================
EBADREQUEST = "EBADREQUEST"
EACCESS = "EACCESS"
ENOENT = "ENOENT"
ENOTREADY = "ENOTREADY"

#: Error code -> HTTP status. Anything else is an internal error.
ERROR_CODE_MAP = {
    EBADREQUEST: HTTP_BAD_REQUEST,
    EACCESS: HTTP_FORBIDDEN,
    ENOENT: HTTP_NOT_FOUND,
    ENOTREADY: HTTP_SERVICE_UNAVAILABLE,
}


# ========================================================================
# VFSError
# ========================================================================
class VFSError(Exception):
    """Error raised by providers (and the request handlers) to signal a failure.

    Args:
        code (str | None): one of EBADREQUEST, EACCESS, ENOENT, ENOTREADY,
            or None for an unclassified error
        context_info (str): human readable detail
        src_exception (Exception): the original exception, if any
        status (int): explicit HTTP status, overrides the `code` mapping
    """

    def __init__(self, code, context_info=None, *, src_exception=None, status=None):
        super().__init__(context_info or code)
        self.code = code
        self.context_info = context_info
        self.src_exception = src_exception
        self.status = int(status) if status is not None else None

    def __repr__(self):
        return f"VFSError({self.get_user_info()})"

    def __str__(self):
        return self.__repr__()

    @property
    def value(self):
        """HTTP status code for this error."""
        if self.status is not None:
            return self.status
        return ERROR_CODE_MAP.get(self.code, HTTP_INTERNAL_ERROR)

    def get_user_info(self):
        """Return readable string."""
        s = get_http_status_string(self.value)
        if self.code:
            s += f" [{self.code}]"

        if self.context_info:
            s += f": {self.context_info}"
        elif self.value in ERROR_RESPONSES:
            s += f": {ERROR_RESPONSES[self.value]}"

        if self.src_exception:
            s += f"\n    Source exception: {self.src_exception!r}"
        return s

    def get_response_page(self):
        """Return a tuple (content-type, response body)."""
        body = self.get_user_info() + "\n"
        return ("text/plain; charset=utf-8", body.encode("utf-8"))


def get_http_status_code(v):
    """Return HTTP response code as integer, e.g. 204."""
    if hasattr(v, "value"):
        return int(v.value)  # v is a VFSError
    return int(v)


def get_http_status_string(v):
    """Return HTTP response string, e.g. 204 -> ('204 No Content').

    `v`: status code or VFSError
    """
    code = get_http_status_code(v)
    try:
        return ERROR_DESCRIPTIONS[code]
    except KeyError:
        return f"{code} Status"


def as_VFSError(e, *, status=None):
    """Convert any exception (or message) to a VFSError.

    Python's `FileNotFoundError` and `PermissionError` are classified as
    ENOENT and EACCESS, everything else is unclassified (500).
    If `status` is passed, it overrides the code mapping.
    """
    if isinstance(e, VFSError):
        if status is not None:
            e.status = int(status)
        return e
    elif isinstance(e, FileNotFoundError):
        return VFSError(ENOENT, e.strerror, src_exception=e, status=status)
    elif isinstance(e, PermissionError):
        return VFSError(EACCESS, e.strerror, src_exception=e, status=status)
    elif isinstance(e, Exception):
        return VFSError(None, src_exception=e, status=status)
    return VFSError(None, f"{e}", status=status)
