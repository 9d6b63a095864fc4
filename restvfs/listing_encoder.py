# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Implement the JsonListingEncoder helper class.

Wraps a stream of directory entries (dicts) into a stream of bytes that
forms a valid JSON array::

    [
      {"name": "a.txt", "mime": "text/plain", "size": 3, "href": "http://host/fs/a.txt"},
      {"name": "sub", "mime": "inode/directory", "size": 0, "href": "http://host/fs/sub/"}
    ]

Entries are pulled from the source one at a time, when the consumer asks for
the next chunk, so a slow client throttles the provider's enumeration.
"""

import json
import re
from urllib.parse import quote

from restvfs import util

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

#: Mime types that denote a container
re_container_mime = re.compile(r"(directory|folder)$")


def is_container_entry(entry):
    """Return True if the entry (or its symlink target) is a container."""
    link_stat = entry.get("linkStat")
    mime = link_stat.get("mime") if link_stat else entry.get("mime")
    return bool(mime and re_container_mime.search(mime))


def make_entry_href(base, entry):
    """Return `base` joined with the entry name (plus '/' for containers)."""
    href = base + quote(entry["name"])
    if is_container_entry(entry):
        href += "/"
    return href


# ============================================================================
# JsonListingEncoder
# ============================================================================


class JsonListingEncoder:
    """Iterator that yields the JSON array encoding of a stream of entries.

    Args:
        entries (iterable): directory entry dicts
        base (str): URL of the listed container (with trailing '/'). If
            None, entries are passed without `href`.
    """

    def __init__(self, entries, base=None):
        self.entries = entries
        self.base = base
        self.count = 0
        self._iter = iter(entries)
        self._done = False

    def __iter__(self):
        return self

    def __next__(self):
        if self._done:
            raise StopIteration
        try:
            entry = next(self._iter)
        except StopIteration:
            self._done = True
            return b"[]" if self.count == 0 else b"\n]"

        if self.base is not None:
            entry["href"] = make_entry_href(self.base, entry)
        prefix = "[\n  " if self.count == 0 else ",\n  "
        self.count += 1
        return util.to_bytes(prefix + json.dumps(entry))

    def close(self):
        """Forward close() to the source (e.g. client disconnected)."""
        self._done = True
        close = getattr(self.entries, "close", None)
        if close:
            _logger.debug(f"Closing entry stream after {self.count} entries")
            close()
