# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Default configuration.
"""

from restvfs.error_printer import ErrorPrinter

__docformat__ = "reStructuredText"

# Use these settings, if config file does not define them (or is totally missing)
DEFAULT_VERBOSE = 3
DEFAULT_LOGGER_DATE_FORMAT = "%H:%M:%S"
DEFAULT_LOGGER_FORMAT = "%(asctime)s.%(msecs)03d - %(levelname)-8s: %(message)s"

DEFAULT_CONFIG = {
    "server": "cheroot",
    "server_args": {},
    "host": "localhost",
    "port": 8080,
    #: URL prefix of the resource tree, e.g. '/fs/' -> '/fs/<res_path>'
    "mount_path": "/",
    #: VFSProvider instance, root folder, or {"class": ..., "kwargs": ...}
    "provider": None,
    #: Options for FilesystemVFSProvider instances created from a folder name
    "fs_vfs_provider": {
        "follow_symlinks": True,
    },
    #: True: only GET, HEAD and PROPFIND are handled, other methods are
    #: passed to the next application
    "read_only": False,
    #: File name that is served for GET requests on containers (e.g. 'index.html')
    "auto_index": None,
    #: Bucket id that is used if the request does not define one
    #: (see `wsgiorg.routing_args`)
    "bucket_id": None,
    #: Chunk size for reading request bodies
    "block_size": 8192,
    "hotfixes": {
        "re_encode_path_info": True,  # WSGI passes PATH_INFO as latin-1
        "unquote_path_info": False,  # Only needed if the server does not unquote
    },
    "middleware_stack": [
        ErrorPrinter,
    ],
    #: Verbose Output
    #: 0 - no output
    #: 1 - no output (excepting application exceptions)
    #: 2 - show warnings
    #: 3 - show single line request summaries (for HTTP logging)
    #: 4 - show additional events
    #: 5 - show full request/response header info (HTTP Logging)
    "verbose": DEFAULT_VERBOSE,
    #: Log options
    "logging": {
        "enable": None,  # True: activate 'restvfs' logger (in library mode)
        "logger_date_format": DEFAULT_LOGGER_DATE_FORMAT,
        "logger_format": DEFAULT_LOGGER_FORMAT,
        "enable_loggers": [],
    },
}
