# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Abstract base class for VFS resource providers.

This module serves these purposes:

  1. Documentation of the contract between the RestVFS request handlers and
     the storage backend ("provider").
  2. Value objects that are passed across this contract:
     :class:`VFSOptions` (request side) and :class:`VFSResult` (result side).

Every provider operation has the signature ``op(path, options)`` and either
returns exactly one :class:`VFSResult` or raises a
:class:`~restvfs.vfs_error.VFSError`.

`path` is the resource path relative to the mount point, always starting
with '/'. A trailing '/' denotes a container. Providers are responsible for
normalizing '..' segments; the request handlers pass paths as received.

Streams
-------
Read operations may return a `stream`, which is an iterable:

  - of ``bytes`` for file content (``readfile``),
  - of directory entry ``dict`` objects for listings (``readdir``), e.g.
    ``{"name": "a.txt", "mime": "text/plain", "size": 3}``, optionally with
    a ``linkStat`` entry describing a symlink target.

Streams are consumed at most once. If the stream has a ``close()`` method,
it is called when the client disconnects before the stream was exhausted,
so providers should release file handles or cursors there (generators do
this naturally in a ``finally`` block).

Entity tags are passed unquoted in both directions.
"""

from abc import ABC, abstractmethod
from enum import Enum

from restvfs import util

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)


class ENTRY_ENCODING:
    """Sentinel for `VFSOptions.encoding`: return structured entries, not raw bytes."""


# ========================================================================
# VFSRange
# ========================================================================
class VFSRange:
    """Requested byte range (both bounds inclusive, both optional).

    `etag` is set from an `If-Range` header: if the resource's current etag
    differs, the provider must answer with an UNSATISFIABLE result.
    """

    def __init__(self, start=None, end=None, *, etag=None):
        self.start = start
        self.end = end
        self.etag = etag

    def __repr__(self):
        return f"VFSRange({self.start}-{self.end}, etag={self.etag!r})"

    def __eq__(self, other):
        return (
            isinstance(other, VFSRange)
            and (self.start, self.end, self.etag) == (other.start, other.end, other.etag)
        )

    def resolve(self, size):
        """Return an absolute `(start, end)` tuple for a resource of `size` bytes.

        Returns None if the range cannot be satisfied.
        ``bytes=-N`` (no start) means the last N bytes.
        """
        start, end = self.start, self.end
        if start is None and end is None:
            return None
        if start is None:
            # Suffix range: the last `end` bytes
            if end == 0 or size == 0:
                return None
            start = max(0, size - end)
            end = size - 1
        elif end is None or end >= size:
            end = size - 1
        if start >= size or start > end:
            return None
        return (start, end)


# ========================================================================
# VFSOptions
# ========================================================================
class VFSOptions:
    """Per-request options passed to every provider call.

    Created fresh for every request and never shared between requests.
    """

    def __init__(self, bucket_id, *, head=False):
        #: Identifies the bucket / backend session
        self.bucket_id = bucket_id
        #: Only metadata is requested (HEAD)
        self.head = head
        #: List of unquoted entity tags from `If-None-Match` (or None)
        self.etag = None
        #: Requested byte range (or None)
        self.range = None
        #: None: raw bytes, ENTRY_ENCODING: structured directory entries
        self.encoding = None
        #: Write source: iterable of bytes (PUT)
        self.stream = None
        #: Source path for rename and copy
        self.from_path = None
        #: Link target for symlink
        self.target = None

    def __repr__(self):
        fields = ", ".join(
            f"{k}={v!r}" for k, v in self.__dict__.items() if v not in (None, False)
        )
        return f"VFSOptions({fields})"

    def matches_etag(self, etag):
        """Return True if `etag` matches one of the `If-None-Match` tags."""
        if not self.etag or etag is None:
            return False
        return "*" in self.etag or etag in self.etag

    @property
    def structured(self):
        return self.encoding is ENTRY_ENCODING


# ========================================================================
# VFSResult
# ========================================================================
class ResultKind(Enum):
    CONTENT = "content"
    LISTING = "listing"
    NOT_MODIFIED = "not-modified"
    PARTIAL = "partial"
    UNSATISFIABLE = "unsatisfiable"
    EMPTY = "empty"


#: Kinds that may carry a body stream
STREAM_KINDS = frozenset((ResultKind.CONTENT, ResultKind.LISTING, ResultKind.PARTIAL))


class VFSResult:
    """Result of a provider call.

    The `kind` is decided once by the provider; request handlers dispatch on
    it. Use the classmethod constructors rather than calling this directly.

    Attributes:
        kind (ResultKind):
        etag (str): unquoted entity tag (optional)
        mime (str): content type (optional)
        size (int): number of bytes that `stream` will deliver (optional)
        stream (iterable): body (None for metadata-only results)
        partial (tuple): (start, end, total_size) for PARTIAL results
        error (VFSError | str): reason for UNSATISFIABLE results
        info (dict): additional metadata (e.g. returned by `stat`)
    """

    def __init__(
        self,
        kind,
        *,
        etag=None,
        mime=None,
        size=None,
        stream=None,
        partial=None,
        error=None,
        info=None,
    ):
        if stream is not None and kind not in STREAM_KINDS:
            raise ValueError(f"{kind} result must not carry a stream")
        if kind is ResultKind.PARTIAL and partial is None:
            raise ValueError("PARTIAL result requires `partial=(start, end, size)`")
        self.kind = kind
        self.etag = etag
        self.mime = mime
        self.size = size
        self.stream = stream
        self.partial = partial
        self.error = error
        self.info = info or {}

    def __repr__(self):
        return "VFSResult({}, etag={!r}, mime={!r}, size={!r}, stream={})".format(
            self.kind.value, self.etag, self.mime, self.size, self.stream is not None
        )

    @classmethod
    def content(cls, stream=None, *, etag=None, mime=None, size=None, info=None):
        """File content (`stream` may be None for HEAD requests)."""
        return cls(
            ResultKind.CONTENT, etag=etag, mime=mime, size=size, stream=stream, info=info
        )

    @classmethod
    def listing(cls, stream=None, *, etag=None, mime=None, info=None):
        """Directory listing; `stream` yields entry dicts."""
        return cls(ResultKind.LISTING, etag=etag, mime=mime, stream=stream, info=info)

    @classmethod
    def partial_content(
        cls, stream=None, *, start, end, total_size, etag=None, mime=None
    ):
        """A byte range `start`-`end` (inclusive) of a resource with `total_size` bytes."""
        return cls(
            ResultKind.PARTIAL,
            etag=etag,
            mime=mime,
            size=end - start + 1,
            stream=stream,
            partial=(start, end, total_size),
        )

    @classmethod
    def not_modified(cls, *, etag=None):
        return cls(ResultKind.NOT_MODIFIED, etag=etag)

    @classmethod
    def unsatisfiable(cls, error, *, etag=None):
        return cls(ResultKind.UNSATISFIABLE, etag=etag, error=error)

    @classmethod
    def empty(cls, **info):
        """Success without a body (e.g. mutations or `stat`)."""
        return cls(
            ResultKind.EMPTY,
            etag=info.get("etag"),
            mime=info.get("mime"),
            size=info.get("size"),
            info=info,
        )

    def as_dict(self):
        """Return the metadata record as JSON-serializable dict (never the stream)."""
        res = dict(self.info)
        for key in ("etag", "mime", "size"):
            value = getattr(self, key)
            if value is not None:
                res[key] = value
        if self.partial:
            start, end, size = self.partial
            res["partialContent"] = {"start": start, "end": end, "size": size}
        return res


# ========================================================================
# VFSProvider
# ========================================================================
class VFSProvider(ABC):
    """Abstract base class for all RestVFS storage providers.

    All operations take `(path, options)` and return a :class:`VFSResult`
    or raise :class:`~restvfs.vfs_error.VFSError`.
    """

    def __init__(self):
        self.mount_path = "/"

    def __repr__(self):
        return self.__class__.__name__

    def set_mount_path(self, mount_path):
        """Set application root for this resource provider.

        This is the value of the `mount_path` configuration option, normalized
        to '/' or '/<path>/'.
        """
        assert mount_path.startswith("/") and mount_path.endswith("/")
        self.mount_path = mount_path

    # --- Read operations ------------------------------------------------

    @abstractmethod
    def readfile(self, path, options):
        """Return CONTENT, PARTIAL, NOT_MODIFIED or UNSATISFIABLE result.

        Honors `options.head`, `options.etag` and `options.range`.
        """

    @abstractmethod
    def readdir(self, path, options):
        """Return LISTING (stream of entry dicts) or NOT_MODIFIED result."""

    @abstractmethod
    def stat(self, path, options):
        """Return EMPTY result whose `info` contains the metadata record."""

    # --- Write operations -----------------------------------------------

    @abstractmethod
    def mkfile(self, path, options):
        """Create a file from `options.stream` (typically empty)."""

    @abstractmethod
    def writefile(self, path, options):
        """Create or overwrite a file with the bytes of `options.stream`."""

    @abstractmethod
    def mkdir(self, path, options):
        """Create a container."""

    @abstractmethod
    def rmfile(self, path, options):
        """Remove a file."""

    @abstractmethod
    def rmdir(self, path, options):
        """Remove a container."""

    @abstractmethod
    def rename(self, path, options):
        """Move `options.from_path` to `path`."""

    @abstractmethod
    def copy(self, path, options):
        """Copy `options.from_path` to `path`."""

    @abstractmethod
    def symlink(self, path, options):
        """Create a symbolic link at `path` pointing to `options.target`."""
