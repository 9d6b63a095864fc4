# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Abstract base middleware class (optional use).
"""

from abc import ABC, abstractmethod

from restvfs.util import NO_DEFAULT, get_dict_value

__docformat__ = "reStructuredText"


class BaseMiddleware(ABC):
    """Abstract base middleware class (optional).

    Note: this is a convenience class, that *may* be used to implement RestVFS
    middlewares. However it is not a requirement: any object that implements
    the WSGI specification can be added to the stack.

    Derived classes in RestVFS include::

        restvfs.error_printer.ErrorPrinter
    """

    def __init__(self, restvfs_app, next_app, config):
        self.restvfs_app = restvfs_app
        self.next_app = next_app
        self.config = config
        self.verbose = config.get("verbose", 3)

    @abstractmethod
    def __call__(self, environ, start_response):
        raise NotImplementedError

    def __repr__(self):
        return f"{self.__module__}.{self.__class__.__name__}"

    def is_disabled(self):
        """Optionally return True to skip this module on startup."""
        return False

    def get_config(self, key_path: str, default=NO_DEFAULT):
        """Return a (nested) configuration value, e.g. 'logging.enable'."""
        return get_dict_value(self.config, key_path, default)
