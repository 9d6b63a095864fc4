# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
WSGI container, that handles the HTTP requests. This object is passed to the
WSGI server (or mounted by a routing framework) and represents our RestVFS
application to the outside.

On init:

    Use the configuration dictionary to initialize logging and the VFS
    provider.

    Normalize the mount path.

    Initialize middleware objects and setup the WSGI application stack.

For every request:

    Decide if the request is ours. Requests are passed to `next_app` without
    writing a response, if

        - `read_only` is set and the method would modify the tree,
        - no bucket id can be resolved,
        - the path is not below the mount path.

    Add info to the WSGI ``environ``:

        environ["restvfs.path"]
            Resource path, relative to the mount path (starts with '/').
        environ["restvfs.bucket_id"]
            Bucket identifier, from ``wsgiorg.routing_args`` (named arg
            'bucket_id') or the `bucket_id` option.
        environ["restvfs.mount_path"]
            Normalized mount path.
        environ["restvfs.config"]
            Configuration dictionary.

    Log the HTTP request, then pass the request to the first middleware.
"""

import copy
import inspect
import platform
import sys
import time
from urllib.parse import unquote

from restvfs import util
from restvfs.default_conf import DEFAULT_CONFIG
from restvfs.error_printer import get_error_response
from restvfs.fs_vfs_provider import FilesystemVFSProvider
from restvfs.mw.base_mw import BaseMiddleware
from restvfs.request_server import RequestServer
from restvfs.util import dynamic_import_class, dynamic_instantiate_class_from_opts
from restvfs.vfs_error import ENOENT, VFSError
from restvfs.vfs_provider import VFSProvider

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

#: Methods that are still handled in `read_only` mode
READ_METHODS = ("GET", "HEAD", "PROPFIND")


def _check_config(config):
    errors = []

    mandatory_fields = ("provider",)
    for field in mandatory_fields:
        if not config.get(field):
            errors.append(f"Missing required option {field!r}.")

    deprecated_fields = {
        "autoIndex": "auto_index",
        "bucketId": "bucket_id",
        "mount": "mount_path",
        "readOnly": "read_only",
        "vfs": "provider",
    }
    for old, new in deprecated_fields.items():
        if old in config:
            errors.append(f"Deprecated option {old!r}: use {new!r} instead.")

    mount_path = config.get("mount_path")
    if mount_path is not None and not util.is_str(mount_path):
        errors.append(f"Option 'mount_path' must be a string: {mount_path!r}.")

    if type(config.get("read_only")) is not bool:
        errors.append("Option 'read_only' must be true or false.")

    auto_index = config.get("auto_index")
    if auto_index is not None and (not util.is_str(auto_index) or "/" in auto_index):
        errors.append(f"Option 'auto_index' must be a plain file name: {auto_index!r}.")

    block_size = config.get("block_size")
    if type(block_size) is not int or block_size <= 0:
        errors.append(f"Option 'block_size' must be a positive integer: {block_size!r}.")

    if errors:
        raise ValueError("Invalid configuration:\n  - " + "\n  - ".join(errors))

    return True


def not_found_app(environ, start_response):
    """Default `next_app`: answer '404 Not Found' for requests we pass on."""
    e = VFSError(ENOENT, f"No handler for {environ.get('PATH_INFO')!r}")
    status, headers, body = get_error_response(
        e, is_head=environ.get("REQUEST_METHOD") == "HEAD"
    )
    start_response(status, headers)
    return [body]


# ========================================================================
# RestVFSApp
# ========================================================================
class RestVFSApp:
    def __init__(self, config, *, next_app=None):
        self.config = copy.deepcopy(DEFAULT_CONFIG)
        util.deep_update(self.config, config)
        config = self.config

        if config["logging"].get("enable") is not False:
            util.init_logging(config)

        # Evaluate configuration and set defaults
        _check_config(config)

        self.verbose = config.get("verbose", 3)

        hotfixes = util.get_dict_value(config, "hotfixes", as_dict=True)
        self.re_encode_path_info = hotfixes.get("re_encode_path_info", True)
        if type(self.re_encode_path_info) is not bool:
            raise ValueError("re_encode_path_info must be bool (or omitted)")
        self.unquote_path_info = hotfixes.get("unquote_path_info", False)

        # Normalized once: '/' or '/<path>/'
        self.mount_path = util.normalize_mount_path(config.get("mount_path"))
        self.read_only = config["read_only"]
        self.auto_index = config.get("auto_index")
        self.bucket_id = config.get("bucket_id")

        self.provider = self._init_provider(config["provider"])
        self.provider.set_mount_path(self.mount_path)

        #: Requests that we don't handle are passed to this WSGI application
        self.next_app = next_app or not_found_app

        # Define WSGI application stack
        middleware_stack = config.get("middleware_stack") or []
        mw_list = []

        # This is the 'inner' application, that handles requests that passed
        # the middleware stack.
        self.application = RequestServer(self.provider, config)

        # The `middleware_stack` is configured such that the first app in the
        # list should be called first. Since every app wraps its predecessor, we
        # iterate in reverse order:
        for mw in reversed(middleware_stack):
            # The middleware stack configuration may contain plain strings,
            # classes, or objects
            if util.is_str(mw):
                # If a plain string is passed, try to import it, assuming
                # `BaseMiddleware` signature
                app_class = dynamic_import_class(mw)
                app = app_class(self, self.application, config)
            elif inspect.isclass(mw):
                if not issubclass(mw, BaseMiddleware):
                    raise ValueError(f"Middleware class {mw} must derive from BaseMiddleware")
                app = mw(self, self.application, config)
            else:
                # Otherwise assume an initialized middleware instance
                app = mw

            if callable(getattr(app, "is_disabled", None)) and app.is_disabled():
                _logger.warning(f"App {app}.is_disabled() returned True: skipping.")
            else:
                mw_list.append(app)
                self.application = app

        _logger.info(
            f"{util.public_restvfs_info} Python/{util.PYTHON_VERSION} {platform.platform(aliased=True)}"
        )
        if self.verbose >= 3:
            _logger.info(f"Provider:    {self.provider}")
            _logger.info(f"Mount path:  {self.mount_path!r}")
            if self.read_only:
                _logger.info("Read-only mode: modifying requests are passed on.")
            if self.auto_index:
                _logger.info(f"Auto index:  {self.auto_index!r}")

        if self.verbose >= 4:
            _logger.info("Middleware stack:")
            for mw in reversed(mw_list):
                _logger.info(f"  - {mw}")
        return

    def _init_provider(self, provider):
        """Return a VFSProvider for the `provider` option."""
        if type(provider) is str:
            # Syntax:
            #   provider: <folder_path>
            fs_opts = util.get_dict_value(self.config, "fs_vfs_provider", as_dict=True)
            provider = FilesystemVFSProvider(
                util.fix_path(provider, self.config), **fs_opts
            )
        elif type(provider) is dict:
            # Syntax:
            #   provider: {"class": <class_path>, "args": <pos_args>, "kwargs": <named_args>}
            provider = dynamic_instantiate_class_from_opts(provider)

        if not isinstance(provider, VFSProvider):
            raise ValueError(f"Invalid provider {provider} (not instance of VFSProvider)")
        return provider

    def resolve_bucket_id(self, environ):
        """Return the bucket id for this request (or None)."""
        routing_args = environ.get("wsgiorg.routing_args")
        if routing_args and len(routing_args) > 1:
            bucket_id = (routing_args[1] or {}).get("bucket_id")
            if bucket_id is not None:
                return bucket_id
        return environ.get("restvfs.bucket_id", self.bucket_id)

    def resolve_path(self, environ):
        """Return the resource path below the mount path (or None).

        Example: mount_path '/fs/', request '/fs/a/b/' -> '/a/b/'
        """
        path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")

        # WSGI always assumes iso-8859-1. Modern clients send UTF-8, so we may
        # have to re-encode.
        if self.re_encode_path_info:
            path = util.re_encode_wsgi(path, fallback=True)

        # We optionally unquote the path here, although this should already be
        # done by the server.
        if self.unquote_path_info:
            path = unquote(path)

        # No '..' sanitizing here: the provider has to normalize the path.
        if not path.startswith(self.mount_path):
            return None
        return path[len(self.mount_path) - 1 :]

    def __call__(self, environ, start_response):
        method = environ["REQUEST_METHOD"]

        if self.read_only and method not in READ_METHODS:
            return self.next_app(environ, start_response)

        bucket_id = self.resolve_bucket_id(environ)
        if bucket_id is None:
            _logger.debug("Could not resolve a bucket id: passing request on.")
            return self.next_app(environ, start_response)

        path = self.resolve_path(environ)
        if path is None:
            return self.next_app(environ, start_response)

        # Always adding these values to environ:
        environ["restvfs.config"] = self.config
        environ["restvfs.bucket_id"] = bucket_id
        environ["restvfs.mount_path"] = self.mount_path
        environ["restvfs.path"] = path

        return self._handle(environ, start_response)

    def _handle(self, environ, start_response):
        start_time = time.time()

        def _start_response_wrapper(status, response_headers, exc_info=None):
            # Log request
            if self.verbose >= 3:
                extra = []
                if environ.get("CONTENT_LENGTH", "") != "":
                    extra.append("length={}".format(environ.get("CONTENT_LENGTH")))
                if "HTTP_RANGE" in environ:
                    extra.append("range={}".format(environ.get("HTTP_RANGE")))
                if "HTTP_IF_NONE_MATCH" in environ:
                    extra.append("if-none-match={}".format(environ["HTTP_IF_NONE_MATCH"]))
                if self.verbose >= 4 and "HTTP_USER_AGENT" in environ:
                    extra.append('agent="{}"'.format(environ.get("HTTP_USER_AGENT")))
                extra.append(f"elap={time.time() - start_time:.3f}sec")
                extra = ", ".join(extra)

                _logger.info(
                    '{addr} - [{time}] "{method} {path}" {extra} -> {status}'.format(
                        addr=environ.get("REMOTE_ADDR", ""),
                        time=util.get_log_time(),
                        method=environ.get("REQUEST_METHOD"),
                        path=util.safe_re_encode(
                            environ["restvfs.path"],
                            sys.stdout.encoding if sys.stdout.encoding else "utf-8",
                        ),
                        extra=extra,
                        status=status,
                    )
                )
            return start_response(status, response_headers, exc_info)

        # Call first middleware
        app_iter = self.application(environ, _start_response_wrapper)
        try:
            yield from app_iter
        finally:
            if hasattr(app_iter, "close"):
                app_iter.close()
        return
