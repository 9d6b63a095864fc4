# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Implementation of a VFS provider that serves resources from a file system.

:class:`~restvfs.fs_vfs_provider.FilesystemVFSProvider` publishes a local
folder. Paths are resolved relative to `root_folder`; attempts to leave the
root (by '..' segments or symlinks) raise EACCESS.

The bucket id is not evaluated: every bucket sees the same folder.
"""

import errno
import os
import shutil
import stat
from contextlib import contextmanager

from restvfs import util
from restvfs.vfs_error import EACCESS, EBADREQUEST, ENOENT, VFSError
from restvfs.vfs_provider import VFSProvider, VFSResult

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

BUFFER_SIZE = 8192

DIRECTORY_MIME = "inode/directory"
SYMLINK_MIME = "inode/symlink"


@contextmanager
def _translated_os_errors(path):
    """Re-raise OSErrors as classified VFSErrors."""
    try:
        yield
    except FileNotFoundError as e:
        raise VFSError(ENOENT, f"{path}: {e.strerror}", src_exception=e) from None
    except PermissionError as e:
        raise VFSError(EACCESS, f"{path}: {e.strerror}", src_exception=e) from None
    except (FileExistsError, IsADirectoryError, NotADirectoryError) as e:
        raise VFSError(EBADREQUEST, f"{path}: {e.strerror}", src_exception=e) from None
    except OSError as e:
        if e.errno == errno.ENOTEMPTY:
            raise VFSError(EBADREQUEST, f"{path}: {e.strerror}", src_exception=e) from None
        raise


# ========================================================================
# FilesystemVFSProvider
# ========================================================================
class FilesystemVFSProvider(VFSProvider):
    """Serve a local folder.

    Args:
        root_folder (str)
        follow_symlinks (bool): False: reject access through symbolic links
        block_size (int): chunk size for reading files
    """

    def __init__(self, root_folder, *, follow_symlinks=True, block_size=BUFFER_SIZE):
        root_folder = os.path.abspath(root_folder)
        if not root_folder or not os.path.isdir(root_folder):
            raise ValueError(f"Invalid root path: {root_folder}")

        super().__init__()

        self.root_folder_path = root_folder
        self.real_root_path = os.path.realpath(root_folder)
        self.follow_symlinks = follow_symlinks
        self.block_size = block_size

    def __repr__(self):
        return f"{self.__class__.__name__} for path {self.root_folder_path!r}"

    def _loc_to_file_path(self, path):
        """Convert resource path to an absolute file path below the root folder."""
        root_path = self.root_folder_path
        path_parts = path.strip("/").split("/")
        file_path = os.path.abspath(os.path.join(root_path, *path_parts))

        if file_path != root_path and not file_path.startswith(root_path + os.sep):
            raise VFSError(EACCESS, f"Tried to access file outside root: {path!r}")
        return file_path

    def _check_target(self, path, file_path):
        """Raise EACCESS if `file_path` is a rejected symlink or leaves the root."""
        if os.path.islink(file_path) and not self.follow_symlinks:
            raise VFSError(EACCESS, f"Symlink support is disabled: {path!r}")
        real_path = os.path.realpath(file_path)
        real_root = self.real_root_path
        if real_path != real_root and not real_path.startswith(real_root + os.sep):
            raise VFSError(EACCESS, f"Link target is outside root: {path!r}")

    def _get_info(self, name, file_path, *, follow=False):
        """Return an entry dict for a file, folder, or symlink."""
        st = os.stat(file_path) if follow else os.lstat(file_path)
        if stat.S_ISDIR(st.st_mode):
            mime = DIRECTORY_MIME
        elif stat.S_ISLNK(st.st_mode):
            mime = SYMLINK_MIME
        else:
            mime = util.guess_mime_type(name)
        info = {"name": name, "mime": mime, "size": st.st_size, "mtime": st.st_mtime}

        if stat.S_ISLNK(st.st_mode):
            info["link"] = os.readlink(file_path)
            try:
                info["linkStat"] = self._get_info(name, file_path, follow=True)
            except OSError as e:
                _logger.debug(f"Dangling symlink {file_path!r}: {e}")
        return info

    def _iter_entries(self, dir_path):
        for name in sorted(os.listdir(dir_path)):
            try:
                yield self._get_info(name, os.path.join(dir_path, name))
            except FileNotFoundError:
                # Removed while we were listing
                _logger.debug(f"Skipping vanished entry {name!r}")

    def _iter_content(self, file_path, offset, length):
        with open(file_path, "rb", BUFFER_SIZE) as fp:
            fp.seek(offset)
            remaining = length
            while remaining > 0:
                buf = fp.read(min(self.block_size, remaining))
                if not buf:
                    break
                remaining -= len(buf)
                yield buf

    # --- Read operations ------------------------------------------------

    def readfile(self, path, options):
        file_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            self._check_target(path, file_path)
            st = os.stat(file_path)
            if stat.S_ISDIR(st.st_mode):
                raise VFSError(EBADREQUEST, f"{path!r} is a container")
            etag = util.get_file_etag(file_path)

        size = st.st_size
        mime = util.guess_mime_type(file_path)

        if options.matches_etag(etag):
            return VFSResult.not_modified(etag=etag)

        if options.range:
            rng = options.range
            if rng.etag is not None and rng.etag != etag:
                return VFSResult.unsatisfiable(
                    f"Resource changed (If-Range {rng.etag!r} != {etag!r})", etag=etag
                )
            span = rng.resolve(size)
            if span is None:
                return VFSResult.unsatisfiable(
                    f"Range {rng.start}-{rng.end} not satisfiable for size {size}",
                    etag=etag,
                )
            start, end = span
            stream = None
            if not options.head:
                stream = self._iter_content(file_path, start, end - start + 1)
            return VFSResult.partial_content(
                stream, start=start, end=end, total_size=size, etag=etag, mime=mime
            )

        stream = None if options.head else self._iter_content(file_path, 0, size)
        return VFSResult.content(stream, etag=etag, mime=mime, size=size)

    def readdir(self, path, options):
        dir_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            self._check_target(path, dir_path)
            if not os.path.isdir(dir_path):
                if os.path.exists(dir_path):
                    raise VFSError(EBADREQUEST, f"{path!r} is not a container")
                raise VFSError(ENOENT, f"{path!r} not found")
            etag = util.get_file_etag(dir_path)

        if options.matches_etag(etag):
            return VFSResult.not_modified(etag=etag)

        stream = None if options.head else self._iter_entries(dir_path)
        return VFSResult.listing(stream, etag=etag, mime=DIRECTORY_MIME)

    def stat(self, path, options):
        file_path = self._loc_to_file_path(path)
        name = path.strip("/").split("/")[-1]
        with _translated_os_errors(path):
            info = self._get_info(name, file_path)
            if not stat.S_ISLNK(os.lstat(file_path).st_mode):
                info["etag"] = util.get_file_etag(file_path)
        return VFSResult.empty(**info)

    # --- Write operations -----------------------------------------------

    def _write(self, path, options):
        file_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            if os.path.isdir(file_path):
                raise VFSError(EBADREQUEST, f"{path!r} is a container")
            self._check_target(path, file_path)
            with open(file_path, "wb", BUFFER_SIZE) as fp:
                for chunk in options.stream or ():
                    fp.write(chunk)
            info = self._get_info(os.path.basename(file_path), file_path)
            info["etag"] = util.get_file_etag(file_path)
        _logger.debug(f"Wrote {info['size']} bytes to {file_path!r}")
        return VFSResult.empty(**info)

    def mkfile(self, path, options):
        return self._write(path, options)

    def writefile(self, path, options):
        return self._write(path, options)

    def mkdir(self, path, options):
        dir_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            os.mkdir(dir_path)
        return VFSResult.empty()

    def rmfile(self, path, options):
        file_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            if os.path.isdir(file_path) and not os.path.islink(file_path):
                raise VFSError(EBADREQUEST, f"{path!r} is a container")
            os.remove(file_path)
        return VFSResult.empty()

    def rmdir(self, path, options):
        dir_path = self._loc_to_file_path(path)
        if dir_path == self.root_folder_path:
            raise VFSError(EACCESS, "Cannot remove the root folder")
        with _translated_os_errors(path):
            if os.path.islink(dir_path) or not os.path.isdir(dir_path):
                if os.path.lexists(dir_path):
                    raise VFSError(EBADREQUEST, f"{path!r} is not a container")
                raise VFSError(ENOENT, f"{path!r} not found")
            shutil.rmtree(dir_path)
        return VFSResult.empty()

    def _get_source_path(self, path, options):
        if not options.from_path:
            raise VFSError(EBADREQUEST, f"Missing source path for {path!r}")
        src_path = self._loc_to_file_path(options.from_path)
        if not os.path.lexists(src_path):
            raise VFSError(ENOENT, f"{options.from_path!r} not found")
        return src_path

    def rename(self, path, options):
        src_path = self._get_source_path(path, options)
        dest_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            os.replace(src_path, dest_path)
        return VFSResult.empty()

    def copy(self, path, options):
        src_path = self._get_source_path(path, options)
        dest_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            self._check_target(options.from_path, src_path)
            if os.path.isdir(src_path):
                shutil.copytree(src_path, dest_path, symlinks=True)
            else:
                shutil.copy2(src_path, dest_path)
        return VFSResult.empty()

    def symlink(self, path, options):
        if not options.target:
            raise VFSError(EBADREQUEST, f"Missing link target for {path!r}")
        link_path = self._loc_to_file_path(path)
        with _translated_os_errors(path):
            os.symlink(options.target, link_path)
        return VFSResult.empty()
