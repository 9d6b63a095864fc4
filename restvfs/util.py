# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Miscellaneous support functions for RestVFS.
"""

import collections.abc
import logging
import mimetypes
import os
import stat
import sys
import time
from email.utils import formatdate
from hashlib import md5
from urllib.parse import quote

from restvfs import __version__
from restvfs.vfs_error import (
    VFSError,
    as_VFSError,
    get_http_status_string,
)

__docformat__ = "reStructuredText"

#: The base logger (silent by default)
BASE_LOGGER_NAME = "restvfs"
_logger = logging.getLogger(BASE_LOGGER_NAME)

#: Currently used Python version as string
PYTHON_VERSION = ".".join([str(s) for s in sys.version_info[:3]])

#: Project name and version presented to the clients
public_restvfs_info = f"RestVFS/{__version__}"


class NO_DEFAULT:
    """"""


# ========================================================================
# String tools
# ========================================================================


def is_bytes(s):
    """Return True for bytestrings."""
    return isinstance(s, bytes)


def is_str(s):
    """Return True for native strings."""
    return isinstance(s, str)


def to_bytes(s, encoding="utf8"):
    """Convert a text string (unicode) to bytestring."""
    if type(s) is not bytes:
        s = bytes(s, encoding)
    return s


def to_str(s, encoding="utf8"):
    """Convert data to native str type."""
    if type(s) is bytes:
        s = str(s, encoding)
    elif type(s) is not str:
        s = str(s)
    return s


def safe_re_encode(s, encoding_to, *, errors="backslashreplace"):
    """Re-encode str or binary so that is compatible with a given encoding (replacing
    unsupported chars).
    """
    if not encoding_to:
        encoding_to = "ASCII"
    if is_bytes(s):
        s = s.decode(encoding_to, errors=errors).encode(encoding_to)
    else:
        s = s.encode(encoding_to, errors=errors).decode(encoding_to)
    return s


def get_dict_value(d, key_path, default=NO_DEFAULT, *, as_dict=False):
    """Return the value of a nested dict using dot-notation path.

    Args:
        d (dict):
        key_path (str):
        default  (any):
        as_dict (bool):
            Assume default is `{}` and also return `{}` if the key exists with
            a value of `None`. This covers the case where suboptions are
            supposed to be dicts, but are defined in a YAML file as entry
            without a value.

    Raises:
        KeyError:
    """
    if as_dict:
        try:
            res = get_dict_value(d, key_path, default={})
            return res if res is not None else {}
        except (AttributeError, KeyError, ValueError, IndexError):
            return {}

    if default is not NO_DEFAULT:
        try:
            return get_dict_value(d, key_path)
        except (AttributeError, KeyError, ValueError, IndexError):
            return default

    seg_list = key_path.split(".")
    value = d[seg_list.pop(0)]
    while seg_list:
        value = value[seg_list.pop(0)]
    return value


def check_tags(tags, known, *, msg=None, required=None):
    """Raise ValueError if `tags` contains unknown tags or misses required ones."""
    known = set(known)
    tags = set(tags)
    res = []
    unknown = tags.difference(known)
    if unknown:
        res.append("Unknown: {!r}".format("', '".join(sorted(unknown))))
    if required and required not in tags:
        res.append(f"Missing: {required!r}")
    if res:
        if msg:
            res.insert(0, msg)
        raise ValueError("\n".join(res))


def deep_update(d, u):
    """Merge dict `u` into `d` (recursively for nested dicts)."""
    for k, v in u.items():
        if isinstance(v, collections.abc.Mapping):
            prev_val = d.get(k)
            if prev_val is None or type(prev_val) in (bool, float, int, str):
                # Prev. values is a scalar: replace it with a copy of the new dict
                d[k] = dict(v)
            else:
                # Merge new values into prev. dict
                d[k] = deep_update(d.get(k, {}), v)
        else:
            d[k] = v
    return d


# --- WSGI support ---


def re_encode_wsgi(s: str, *, encoding="utf-8", fallback=False) -> str:
    """Convert a WSGI string to `str`, assuming the client used UTF-8.

    WSGI always assumes iso-8859-1. Modern clients send UTF-8, so we have to
    re-encode

    https://www.python.org/dev/peps/pep-3333/#unicode-issues
    https://bugs.python.org/issue16679#msg177450
    """
    try:
        if type(s) is bytes:
            return s.decode(encoding)
        return s.encode("iso-8859-1").decode(encoding)
    except (UnicodeDecodeError, UnicodeEncodeError):
        if fallback:
            return s
        raise


# ========================================================================
# Time tools
# ========================================================================


def get_rfc1123_time(secs=None):
    """Return <secs> in rfc 1123 date/time format (pass secs=None for current date)."""
    # Time string must be locale independent
    return formatdate(timeval=secs, localtime=False, usegmt=True)


def get_log_time(secs=None):
    """Return <secs> in log time format (pass secs=None for current date)."""
    return time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime(secs))


# ========================================================================
# Logging
# ========================================================================


def init_logging(config):
    """Initialize base logger named 'restvfs'.

    The base logger is filtered by the `verbose` configuration option.

    **Note:** init_logging() is automatically called if an application adds
    ``"logging": { "enable": true }`` to the configuration.

    Module loggers
    ~~~~~~~~~~~~~~
    Module loggers (e.g 'restvfs.request_server') are named loggers, that
    can be independently switched to DEBUG mode by listing them in
    ``logging.enable_loggers``.

    Log Level Matrix
    ~~~~~~~~~~~~~~~~

    +---------+--------+-------------+------------------------+------------------------+
    | Verbose | Option | base logger | module logger(default) | module logger(enabled) |
    +=========+========+=============+========================+========================+
    |    0    | -qqq   | CRITICAL    | CRITICAL               | CRITICAL               |
    |    1    | -qq    | ERROR       | ERROR                  | ERROR                  |
    |    2    | -q     | WARN        | WARN                   | WARN                   |
    |    3    |        | INFO        | INFO                   | **DEBUG**              |
    |    4    | -v     | DEBUG       | DEBUG                  | DEBUG                  |
    |    5    | -vv    | DEBUG       | DEBUG                  | DEBUG                  |
    +---------+--------+-------------+------------------------+------------------------+
    """
    from restvfs.default_conf import DEFAULT_LOGGER_DATE_FORMAT, DEFAULT_LOGGER_FORMAT

    verbose = config.get("verbose", 3)
    log_opts = config.get("logging") or {}

    enable_loggers = log_opts.get("enable_loggers") or []

    logger_date_format = log_opts.get("logger_date_format", DEFAULT_LOGGER_DATE_FORMAT)
    logger_format = log_opts.get("logger_format", DEFAULT_LOGGER_FORMAT)

    formatter = logging.Formatter(logger_format, logger_date_format)

    consoleHandler = logging.StreamHandler(sys.stdout)
    consoleHandler.setFormatter(formatter)

    logger = logging.getLogger(BASE_LOGGER_NAME)

    if verbose >= 4:  # --verbose
        logger.setLevel(logging.DEBUG)
    elif verbose == 3:  # default
        logger.setLevel(logging.INFO)
    elif verbose == 2:  # --quiet
        logger.setLevel(logging.WARN)
    elif verbose == 1:  # -qq
        logger.setLevel(logging.ERROR)
    else:  # -qqq
        logger.setLevel(logging.CRITICAL)

    # Don't call the root's handlers after our custom handlers
    logger.propagate = False

    # Remove previous handlers
    for hdlr in logger.handlers[:]:  # Must iterate an array copy
        hdlr.flush()
        hdlr.close()
        logger.removeHandler(hdlr)

    logger.addHandler(consoleHandler)

    if verbose >= 3:
        for e in enable_loggers:
            if not e.startswith(BASE_LOGGER_NAME + "."):
                e = BASE_LOGGER_NAME + "." + e
            lg = logging.getLogger(e.strip())
            lg.setLevel(logging.DEBUG)
    return


def get_module_logger(moduleName):
    """Create a module logger, that can be en/disabled by configuration.

    @see: unit.init_logging
    """
    if not moduleName.startswith(BASE_LOGGER_NAME + "."):
        moduleName = BASE_LOGGER_NAME + "." + moduleName
    return logging.getLogger(moduleName)


# ========================================================================
# Module Import
# ========================================================================


def dynamic_import_class(name):
    """Import a class from a module string, e.g. ``my.module.ClassName``."""
    import importlib

    if "." not in name:
        raise ValueError(f"Expected `path.to.ClassName` string: {name!r}")
    module_name, class_name = name.rsplit(".", 1)
    try:
        module = importlib.import_module(module_name)
    except Exception as e:
        _logger.error(f"Dynamic import of {name!r} failed: {e}")
        raise
    return getattr(module, class_name)


def dynamic_instantiate_class_from_opts(options):
    """Import a class and instantiate with custom args.

    Construct from class path, without constructor args::

        dynamic_instantiate_class_from_opts("restvfs.fs_vfs_provider.FilesystemVFSProvider")

    Construct with constructor args::

        opts = {
            "class": "restvfs.fs_vfs_provider.FilesystemVFSProvider",
            "args": ["/var/data"],
            "kwargs": {"follow_symlinks": False},
        }
        dynamic_instantiate_class_from_opts(opts)
    """
    if type(options) is str:
        options = {"class": options}

    check_tags(
        options,
        {"class", "args", "kwargs"},
        required="class",
        msg="Invalid class instantiation options",
    )
    class_name = options["class"]
    pos_args = options.get("args") or []
    if not isinstance(pos_args, (tuple, list)):
        raise ValueError(f"Expected list format for `args` option: {options}")
    kwargs = options.get("kwargs") or {}
    if not isinstance(kwargs, dict):
        raise ValueError(f"Expected dict format for `kwargs` option: {options}")

    the_class = dynamic_import_class(class_name)
    inst = the_class(*pos_args, **kwargs)
    _logger.debug(f"Instantiate {class_name}({pos_args}, {kwargs}) => {inst}")
    return inst


def fix_path(path, root, *, expand_vars=True, must_exist=True, allow_none=True):
    """Convert path to absolute, expand and check.

    Convert path to absolute if required, expand leading '~' as user home dir,
    expand %VAR%, $Var, ...
    """
    if path in (None, ""):
        if allow_none:
            return None
        raise ValueError(f"Invalid path {path!r}")

    if not os.path.isabs(path):
        if not root:
            root = os.getcwd()
        elif type(root) is dict:
            # Evaluate path relative to the folder of the config file (if any)
            config_file = root.get("_config_file")
            if config_file:
                root = os.path.dirname(config_file)
            else:
                root = os.getcwd()
        path = os.path.abspath(os.path.join(root, path))

    if expand_vars:
        path = os.path.expandvars(os.path.expanduser(path))

    if must_exist and not os.path.exists(path):
        raise ValueError(f"Invalid path: {path!r}")

    return path


# ========================================================================
# WSGI
# ========================================================================
def get_content_length(environ):
    """Return a positive CONTENT_LENGTH in a safe way (return 0 otherwise)."""
    try:
        return max(0, int(environ.get("CONTENT_LENGTH") or 0))
    except ValueError:
        return 0


def read_and_discard_input(environ, block_size=8192):
    """Read the request body from wsgi.input, if this has not been done yet.

    Returning a response without reading the request body would leave stray
    bytes on a persistent (HTTP/1.1) connection.
    """
    if environ.get("restvfs.some_input_read") or environ.get("restvfs.all_input_read"):
        return
    remaining = get_content_length(environ)
    if remaining == 0:
        return

    environ["restvfs.some_input_read"] = 1
    wsgi_input = environ["wsgi.input"]
    discarded = 0
    while remaining > 0:
        buf = wsgi_input.read(min(block_size, remaining))
        if not buf:
            break
        discarded += len(buf)
        remaining -= len(buf)
    environ["restvfs.all_input_read"] = 1
    _logger.debug(f"Discarded {discarded} bytes of unread request body")


def fail(value, context_info=None, *, src_exception=None, status=None):
    """Wrapper to raise (and log) VFSError.

    `value` is an error code (e.g. EBADREQUEST) or an exception.
    """
    if isinstance(value, Exception):
        e = as_VFSError(value, status=status)
    else:
        e = VFSError(value, context_info, src_exception=src_exception, status=status)
    _logger.debug(f"Raising VFSError {e.get_user_info()}")
    raise e


# ========================================================================
# SubAppStartResponse
# ========================================================================
class SubAppStartResponse:
    def __init__(self):
        self.__status = ""
        self.__response_headers = []
        self.__exc_info = None

        super().__init__()

    @property
    def status(self):
        return self.__status

    @property
    def response_headers(self):
        return self.__response_headers

    @property
    def exc_info(self):
        return self.__exc_info

    @property
    def called(self):
        return bool(self.__status)

    def __call__(self, status, response_headers, exc_info=None):
        self.__status = status
        self.__response_headers = response_headers
        self.__exc_info = exc_info


def send_status_response(environ, start_response, status, *, add_headers=None):
    """Start a WSGI response with an empty body."""
    headers = [("Content-Length", "0"), ("Date", get_rfc1123_time())]
    if add_headers:
        headers.extend(add_headers)
    start_response(get_http_status_string(status), headers)
    return [b""]


# ========================================================================
# URLs
# ========================================================================


def normalize_mount_path(mount_path):
    """Return mount path with exactly one leading and one trailing slash.

    Example: "fs" -> "/fs/", None -> "/"
    """
    mount_path = (mount_path or "").strip("/")
    if not mount_path:
        return "/"
    return "/" + mount_path + "/"


def is_container_path(path):
    """Return True if the resource path denotes a container (trailing slash)."""
    return path.endswith("/")


def make_base_url(environ, mount_path, path):
    """Return absolute URL of `path` below `mount_path`.

    Example: ("/fs/", "/a/b/") -> "http://localhost:8080/fs/a/b/"
    """
    url = environ.get("wsgi.url_scheme", "http") + "://"
    if environ.get("HTTP_HOST"):
        url += environ["HTTP_HOST"]
    else:
        url += environ.get("SERVER_NAME", "localhost")
        port = environ.get("SERVER_PORT")
        if port and port not in ("80", "443"):
            url += ":" + port
    return url + quote(mount_path.rstrip("/") + path)


# ========================================================================
# ETags
# ========================================================================


def parse_if_match_header(value):
    """Return a list of etag-values for a `If-Match` or `If-None-Match` header.

    Remove enclosing quotes for easy comparison with the etags that providers
    return. We strip the weak-ETag prefix.
    """
    res = []
    for etag in value.split(","):
        etag = etag.strip()
        if etag.startswith("W/"):
            etag = etag[2:]
        if etag.startswith('"') and etag.endswith('"'):
            etag = etag[1:-1]
        if etag:
            res.append(etag)
    return res


def unquote_etag(etag):
    """Return entity tag without weak prefix and enclosing quotes."""
    tags = parse_if_match_header(etag)
    return tags[0] if tags else None


def quote_etag(etag):
    """Return an ETag header value for an unquoted entity tag."""
    etag = to_str(etag).strip()
    if etag.startswith('"') or etag.startswith("W/"):
        return etag
    return f'"{etag}"'


def get_file_etag(file_path):
    """Return a strong, unquoted Entity Tag for a (file)path.

    Returns the following as entity tags::

        Non-file - md5(pathname)
        Win32 - md5(pathname)-lastmodifiedtime-filesize
        Others - inode-lastmodifiedtime-filesize
    """
    fstat = os.stat(file_path)
    if not stat.S_ISREG(fstat.st_mode):
        key = f"{file_path}-{fstat.st_mtime_ns}"
        return md5(key.encode("utf8", "surrogateescape")).hexdigest()
    if sys.platform == "win32":
        digest = md5(file_path.encode("utf8", "surrogateescape")).hexdigest()
        return f"{digest}-{fstat[stat.ST_MTIME]}-{fstat[stat.ST_SIZE]}"
    return f"{fstat[stat.ST_INO]}-{fstat[stat.ST_MTIME]}-{fstat[stat.ST_SIZE]}"


# ========================================================================
# guess_mime_type
# ========================================================================
_MIME_TYPES = {
    ".oga": "audio/ogg",
    ".ogg": "audio/ogg",
    ".ogv": "video/ogg",
    ".webm": "video/webm",
    ".md": "text/markdown",
    ".yml": "application/yaml",
    ".yaml": "application/yaml",
}


def guess_mime_type(url):
    """Use the mimetypes module to lookup the type for an extension."""
    (mimetype, _mimeencoding) = mimetypes.guess_type(url)
    if not mimetype:
        ext = os.path.splitext(url)[1]
        mimetype = _MIME_TYPES.get(ext)
        _logger.debug(f"mimetype({url}): {mimetype}")
    if not mimetype:
        mimetype = "application/octet-stream"
    return mimetype
