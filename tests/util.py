# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
    Test helpers.

Example:
    root_path = create_test_folder("restvfs-test")
    ... test methods
    shutil.rmtree(root_path)
"""

import hashlib
import os
import tempfile

from restvfs.vfs_error import ENOENT, VFSError
from restvfs.vfs_provider import VFSProvider, VFSResult

#: Unicode file name, that must survive the WSGI latin-1 round trip
UNICODE_NAME = "Lotosblütenstengel (蓮花莖).txt"


# ==============================================================================
# write_test_file
# ==============================================================================


def write_test_file(path, data):
    with open(path, "wb") as f:
        f.write(data)
    return path


def create_test_folder(name):
    """Create a fresh temp folder with some files and sub folders.

    Layout::

        <tmp>/
            digits.txt          '0123456789'
            readme.txt
            Lotosblütenstengel (蓮花莖).txt
            empty/
            sub folder/
                a.txt           'abc'
                index.html
    """
    path = tempfile.mkdtemp(prefix=name + "-")
    write_test_file(os.path.join(path, "digits.txt"), b"0123456789")
    write_test_file(os.path.join(path, "readme.txt"), b"Test folder.\n")
    write_test_file(os.path.join(path, UNICODE_NAME), "蓮花莖".encode())
    os.mkdir(os.path.join(path, "empty"))
    os.mkdir(os.path.join(path, "sub folder"))
    write_test_file(os.path.join(path, "sub folder", "a.txt"), b"abc")
    write_test_file(os.path.join(path, "sub folder", "index.html"), b"<h1>Index</h1>")
    return path


# ==============================================================================
# RecordingProvider
# ==============================================================================


class RecordingProvider(VFSProvider):
    """In-memory provider that records all calls.

    Args:
        files (dict): path -> bytes
        dirs (dict): container path -> list of entry dicts
    """

    def __init__(self, files=None, dirs=None):
        super().__init__()
        self.files = dict(files or {})
        self.dirs = dict(dirs or {})
        #: List of (operation, path) tuples
        self.calls = []
        #: VFSOptions of the most recent call
        self.options = None
        #: path -> bytes received by mkfile/writefile
        self.written = {}
        #: Number of streams that were created / released
        self.streams_opened = 0
        self.streams_released = 0
        #: Number of stream items that were consumed
        self.items_consumed = 0

    def _record(self, op, path, options):
        self.calls.append((op, path))
        self.options = options

    def _iter(self, items):
        self.streams_opened += 1
        try:
            for item in items:
                self.items_consumed += 1
                yield item
        finally:
            self.streams_released += 1

    @staticmethod
    def get_etag(data):
        return hashlib.md5(data).hexdigest()

    def readfile(self, path, options):
        self._record("readfile", path, options)
        if path not in self.files:
            raise VFSError(ENOENT, f"{path} not found")
        data = self.files[path]
        etag = self.get_etag(data)

        if options.matches_etag(etag):
            return VFSResult.not_modified(etag=etag)

        if options.range:
            if options.range.etag is not None and options.range.etag != etag:
                return VFSResult.unsatisfiable("etag mismatch", etag=etag)
            span = options.range.resolve(len(data))
            if span is None:
                return VFSResult.unsatisfiable(None, etag=etag)
            start, end = span
            stream = None if options.head else self._iter([data[start : end + 1]])
            return VFSResult.partial_content(
                stream,
                start=start,
                end=end,
                total_size=len(data),
                etag=etag,
                mime="text/plain",
            )

        stream = None if options.head else self._iter([data])
        return VFSResult.content(stream, etag=etag, mime="text/plain", size=len(data))

    def readdir(self, path, options):
        self._record("readdir", path, options)
        if path not in self.dirs:
            raise VFSError(ENOENT, f"{path} not found")
        entries = [dict(e) for e in self.dirs[path]]
        stream = None if options.head else self._iter(entries)
        return VFSResult.listing(stream, etag="dir-etag", mime="inode/directory")

    def stat(self, path, options):
        self._record("stat", path, options)
        if path in self.files:
            data = self.files[path]
            return VFSResult.empty(
                name=path.rsplit("/", 1)[-1],
                size=len(data),
                mime="text/plain",
                etag=self.get_etag(data),
            )
        raise VFSError(ENOENT, f"{path} not found")

    def mkfile(self, path, options):
        self._record("mkfile", path, options)
        self.written[path] = b"".join(options.stream or ())
        return VFSResult.empty()

    def writefile(self, path, options):
        self._record("writefile", path, options)
        self.written[path] = b"".join(options.stream or ())
        return VFSResult.empty()

    def mkdir(self, path, options):
        self._record("mkdir", path, options)
        return VFSResult.empty()

    def rmfile(self, path, options):
        self._record("rmfile", path, options)
        return VFSResult.empty()

    def rmdir(self, path, options):
        self._record("rmdir", path, options)
        return VFSResult.empty()

    def rename(self, path, options):
        self._record("rename", path, options)
        return VFSResult.empty()

    def copy(self, path, options):
        self._record("copy", path, options)
        return VFSResult.empty()

    def symlink(self, path, options):
        self._record("symlink", path, options)
        return VFSResult.empty()
