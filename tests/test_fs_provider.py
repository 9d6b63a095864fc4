# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Unit test for restvfs.fs_vfs_provider

The provider is tested directly and end-to-end through the WSGI stack
(using webtest.TestApp).
"""

import os
import shutil
import sys
import unittest
from urllib.parse import quote

import pytest

from restvfs import util
from restvfs.fs_vfs_provider import DIRECTORY_MIME, FilesystemVFSProvider
from restvfs.rest_app import RestVFSApp
from restvfs.vfs_error import EACCESS, EBADREQUEST, ENOENT, VFSError
from restvfs.vfs_provider import ResultKind, VFSOptions, VFSRange
from tests.util import UNICODE_NAME, create_test_folder

try:
    import webtest
except ImportError:
    print("*" * 70, file=sys.stderr)
    print("Could not import webtest.TestApp: some tests will fail.", file=sys.stderr)
    print("Try 'pip install WebTest' to run these tests.", file=sys.stderr)
    print("*" * 70, file=sys.stderr)
    raise pytest.skip(
        "Skip tests that require WebTest", allow_module_level=True
    ) from None

needs_symlinks = pytest.mark.skipif(
    sys.platform == "win32", reason="Symlinks require privileges on Windows"
)


# ========================================================================
# ProviderTest
# ========================================================================


class ProviderTest(unittest.TestCase):
    """Call FilesystemVFSProvider directly."""

    def setUp(self):
        self.root_path = create_test_folder("restvfs-test")
        self.provider = FilesystemVFSProvider(self.root_path)

    def tearDown(self):
        shutil.rmtree(self.root_path, ignore_errors=True)

    def _options(self, **kw):
        options = VFSOptions("b1")
        for k, v in kw.items():
            setattr(options, k, v)
        return options

    def testInvalidRoot(self):
        with self.assertRaises(ValueError):
            FilesystemVFSProvider(os.path.join(self.root_path, "digits.txt"))

    def testOutsideRoot(self):
        for path in ("/../x", "/a/../../x", "/.."):
            with self.assertRaises(VFSError) as cm:
                self.provider.readfile(path, self._options())
            assert cm.exception.code == EACCESS

    def testReadFile(self):
        res = self.provider.readfile("/digits.txt", self._options())
        assert res.kind is ResultKind.CONTENT
        assert res.mime == "text/plain"
        assert res.size == 10
        assert res.etag == util.get_file_etag(os.path.join(self.root_path, "digits.txt"))
        assert b"".join(res.stream) == b"0123456789"

    def testReadFileInChunks(self):
        provider = FilesystemVFSProvider(self.root_path, block_size=3)
        res = provider.readfile("/digits.txt", self._options())
        assert list(res.stream) == [b"012", b"345", b"678", b"9"]

    def testReadFileHead(self):
        res = self.provider.readfile("/digits.txt", self._options(head=True))
        assert res.kind is ResultKind.CONTENT
        assert res.stream is None
        assert res.size == 10

    def testReadFileErrors(self):
        with self.assertRaises(VFSError) as cm:
            self.provider.readfile("/missing.txt", self._options())
        assert cm.exception.code == ENOENT

        with self.assertRaises(VFSError) as cm:
            self.provider.readfile("/empty", self._options())
        assert cm.exception.code == EBADREQUEST

    def testReadFileNotModified(self):
        etag = self.provider.readfile("/digits.txt", self._options(head=True)).etag
        res = self.provider.readfile("/digits.txt", self._options(etag=[etag]))
        assert res.kind is ResultKind.NOT_MODIFIED
        assert res.stream is None

    def testReadFileRange(self):
        provider = self.provider
        etag = provider.readfile("/digits.txt", self._options(head=True)).etag

        res = provider.readfile("/digits.txt", self._options(range=VFSRange(2, 4)))
        assert res.kind is ResultKind.PARTIAL
        assert res.partial == (2, 4, 10)
        assert res.size == 3
        assert b"".join(res.stream) == b"234"

        res = provider.readfile("/digits.txt", self._options(range=VFSRange(None, 3)))
        assert res.partial == (7, 9, 10)
        assert b"".join(res.stream) == b"789"

        res = provider.readfile("/digits.txt", self._options(range=VFSRange(8, 100)))
        assert res.partial == (8, 9, 10)

        res = provider.readfile(
            "/digits.txt", self._options(range=VFSRange(0, 0, etag=etag))
        )
        assert res.kind is ResultKind.PARTIAL

        res = provider.readfile(
            "/digits.txt", self._options(range=VFSRange(0, 0, etag="outdated"))
        )
        assert res.kind is ResultKind.UNSATISFIABLE

        for rng in (VFSRange(10, 12), VFSRange(5, 2), VFSRange(None, 0)):
            res = provider.readfile("/digits.txt", self._options(range=rng))
            assert res.kind is ResultKind.UNSATISFIABLE, rng
            assert res.stream is None

    def testReadDir(self):
        res = self.provider.readdir("/", self._options())
        assert res.kind is ResultKind.LISTING
        entries = list(res.stream)
        names = [e["name"] for e in entries]
        assert names == sorted(
            ["digits.txt", "readme.txt", UNICODE_NAME, "empty", "sub folder"]
        )
        by_name = {e["name"]: e for e in entries}
        assert by_name["empty"]["mime"] == DIRECTORY_MIME
        assert by_name["digits.txt"]["mime"] == "text/plain"
        assert by_name["digits.txt"]["size"] == 10

        with self.assertRaises(VFSError) as cm:
            self.provider.readdir("/missing/", self._options())
        assert cm.exception.code == ENOENT

        with self.assertRaises(VFSError) as cm:
            self.provider.readdir("/digits.txt/", self._options())
        assert cm.exception.code == EBADREQUEST

    def testReadDirNotModified(self):
        etag = self.provider.readdir("/empty/", self._options(head=True)).etag
        res = self.provider.readdir("/empty/", self._options(etag=[etag]))
        assert res.kind is ResultKind.NOT_MODIFIED

    def testReadDirClose(self):
        """Closing the listing stream early must not fail."""
        res = self.provider.readdir("/", self._options())
        next(iter(res.stream))
        res.stream.close()

    def testStat(self):
        res = self.provider.stat("/digits.txt", self._options())
        info = res.as_dict()
        assert info["name"] == "digits.txt"
        assert info["size"] == 10
        assert info["mime"] == "text/plain"
        assert "etag" in info

        info = self.provider.stat("/sub folder/", self._options()).as_dict()
        assert info["name"] == "sub folder"
        assert info["mime"] == DIRECTORY_MIME

    def testWrite(self):
        provider = self.provider
        provider.writefile("/new.txt", self._options(stream=iter([b"ab", b"cd"])))
        with open(os.path.join(self.root_path, "new.txt"), "rb") as fp:
            assert fp.read() == b"abcd"

        res = provider.mkfile("/new.txt", self._options(stream=iter([])))
        assert res.size == 0
        assert os.path.getsize(os.path.join(self.root_path, "new.txt")) == 0

        with self.assertRaises(VFSError) as cm:
            provider.writefile("/empty", self._options(stream=iter([b"x"])))
        assert cm.exception.code == EBADREQUEST

        with self.assertRaises(VFSError) as cm:
            provider.writefile("/missing/new.txt", self._options(stream=iter([b"x"])))
        assert cm.exception.code == ENOENT

    def testMkdirRmdir(self):
        provider = self.provider
        provider.mkdir("/new/", self._options())
        assert os.path.isdir(os.path.join(self.root_path, "new"))

        with self.assertRaises(VFSError) as cm:
            provider.mkdir("/new/", self._options())
        assert cm.exception.code == EBADREQUEST

        provider.rmdir("/sub folder/", self._options())
        assert not os.path.exists(os.path.join(self.root_path, "sub folder"))

        with self.assertRaises(VFSError) as cm:
            provider.rmdir("/", self._options())
        assert cm.exception.code == EACCESS

        with self.assertRaises(VFSError) as cm:
            provider.rmdir("/digits.txt/", self._options())
        assert cm.exception.code == EBADREQUEST

    def testRmfile(self):
        provider = self.provider
        provider.rmfile("/digits.txt", self._options())
        assert not os.path.exists(os.path.join(self.root_path, "digits.txt"))

        with self.assertRaises(VFSError) as cm:
            provider.rmfile("/digits.txt", self._options())
        assert cm.exception.code == ENOENT

        with self.assertRaises(VFSError) as cm:
            provider.rmfile("/empty", self._options())
        assert cm.exception.code == EBADREQUEST

    def testRenameCopy(self):
        provider = self.provider
        provider.rename("/moved.txt", self._options(from_path="/digits.txt"))
        assert os.path.isfile(os.path.join(self.root_path, "moved.txt"))
        assert not os.path.exists(os.path.join(self.root_path, "digits.txt"))

        provider.copy("/copy.txt", self._options(from_path="/moved.txt"))
        assert os.path.isfile(os.path.join(self.root_path, "moved.txt"))
        assert os.path.isfile(os.path.join(self.root_path, "copy.txt"))

        provider.copy("/sub copy/", self._options(from_path="/sub folder/"))
        assert os.path.isfile(os.path.join(self.root_path, "sub copy", "a.txt"))

        with self.assertRaises(VFSError) as cm:
            provider.rename("/x.txt", self._options(from_path="/missing.txt"))
        assert cm.exception.code == ENOENT

        with self.assertRaises(VFSError) as cm:
            provider.copy("/x.txt", self._options())
        assert cm.exception.code == EBADREQUEST

    @needs_symlinks
    def testSymlink(self):
        provider = self.provider
        provider.symlink("/link.txt", self._options(target="digits.txt"))
        assert os.path.islink(os.path.join(self.root_path, "link.txt"))

        res = provider.readfile("/link.txt", self._options())
        assert b"".join(res.stream) == b"0123456789"

        entries = {e["name"]: e for e in provider.readdir("/", self._options()).stream}
        assert entries["link.txt"]["link"] == "digits.txt"
        assert entries["link.txt"]["linkStat"]["size"] == 10

        provider.symlink("/link-dir", self._options(target="sub folder"))
        entries = {e["name"]: e for e in provider.readdir("/", self._options()).stream}
        assert entries["link-dir"]["linkStat"]["mime"] == DIRECTORY_MIME

        # Dangling links are listed without linkStat
        provider.symlink("/dangling", self._options(target="missing.txt"))
        entries = {e["name"]: e for e in provider.readdir("/", self._options()).stream}
        assert "linkStat" not in entries["dangling"]

    @needs_symlinks
    def testSymlinkOutsideRoot(self):
        outside = create_test_folder("restvfs-outside")
        try:
            os.symlink(outside, os.path.join(self.root_path, "escape"))
            with self.assertRaises(VFSError) as cm:
                self.provider.readfile("/escape/digits.txt", self._options())
            assert cm.exception.code == EACCESS

            provider = FilesystemVFSProvider(self.root_path, follow_symlinks=False)
            self.provider.symlink("/inner", self._options(target="digits.txt"))
            with self.assertRaises(VFSError) as cm:
                provider.readfile("/inner", self._options())
            assert cm.exception.code == EACCESS
        finally:
            shutil.rmtree(outside, ignore_errors=True)


# ========================================================================
# ServerTest
# ========================================================================


class ServerTest(unittest.TestCase):
    """Test RestVFSApp with a FilesystemVFSProvider using webtest."""

    def _makeRestVFSApp(self, share_path, **opts):
        config = {
            "provider": share_path,
            "mount_path": "/fs/",
            "bucket_id": "default",
            "auto_index": None,
            "verbose": 1,
            "logging": {"enable": False},
        }
        config.update(opts)
        return RestVFSApp(config)

    def setUp(self):
        self.root_path = create_test_folder("restvfs-test")
        self.app = webtest.TestApp(self._makeRestVFSApp(self.root_path))

    def tearDown(self):
        del self.app
        shutil.rmtree(self.root_path, ignore_errors=True)

    def testListing(self):
        app = self.app
        res = app.get("/fs/", status=200)
        entries = res.json
        names = [e["name"] for e in entries]
        assert "digits.txt" in names
        assert UNICODE_NAME in names
        by_name = {e["name"]: e for e in entries}
        assert by_name["sub folder"]["href"].endswith("/fs/sub%20folder/")
        assert by_name["digits.txt"]["href"].endswith("/fs/digits.txt")

        res = app.get("/fs/empty/", status=200)
        assert res.body == b"[]"

        app.get("/fs/not-existing-124/", status=404)

    def testAutoIndex(self):
        app = webtest.TestApp(
            self._makeRestVFSApp(self.root_path, auto_index="index.html")
        )
        res = app.get("/fs/sub%20folder/", status=200)
        assert res.body == b"<h1>Index</h1>"
        assert res.content_type == "text/html"

        res = app.get("/fs/empty/", status=200)
        assert res.json == []

    def testGetPut(self):
        """Read and write file contents."""
        app = self.app

        data1 = b"this is a file\nwith two lines"
        # Big file with 1 MB
        data2 = b"".join(b"%04i: %s\n" % (i, b"." * 100) for i in range(10 * 1000))

        app.get("/fs/file1.txt", status=404)
        app.put("/fs/file1.txt", data1, status=200)
        res = app.get("/fs/file1.txt", status=200)
        assert res.body == data1

        app.put("/fs/file1.txt", data2, status=200)
        res = app.get("/fs/file1.txt", status=200)
        assert res.body == data2
        assert res.headers["Content-Length"] == str(len(data2))

        # Empty PUT truncates (mkfile)
        app.put("/fs/file1.txt", b"", status=200)
        res = app.get("/fs/file1.txt", status=200)
        assert res.body == b""

        app.put("/fs/new%20folder/", b"", status=200)
        assert os.path.isdir(os.path.join(self.root_path, "new folder"))

        app.put("/fs/missing/file.txt", data1, status=404)

    def testUnicodeName(self):
        res = self.app.get("/fs/" + quote(UNICODE_NAME), status=200)
        assert res.body == "蓮花莖".encode()

    def testConditionals(self):
        app = self.app
        res = app.get("/fs/digits.txt", status=200)
        etag = res.headers["ETag"]

        res = app.get("/fs/digits.txt", headers={"If-None-Match": etag}, status=304)
        assert res.body == b""

        res = app.get("/fs/digits.txt", headers={"Range": "bytes=2-4"}, status=206)
        assert res.body == b"234"
        assert res.headers["Content-Range"] == "bytes 2-4/10"

        res = app.get(
            "/fs/digits.txt",
            headers={"Range": "bytes=-3", "If-Range": etag},
            status=206,
        )
        assert res.body == b"789"

        app.get("/fs/digits.txt", headers={"Range": "bytes=20-"}, status=416)
        app.get("/fs/digits.txt", headers={"Range": "bytes=-"}, status=416)

        # The listing etag changes when the folder is modified
        res = app.get("/fs/empty/", status=200)
        dir_etag = res.headers["ETag"]
        app.get("/fs/empty/", headers={"If-None-Match": dir_etag}, status=304)

    def testHead(self):
        res = self.app.head("/fs/digits.txt", status=200)
        assert res.body == b""
        assert res.headers["Content-Length"] == "10"

    def testDelete(self):
        app = self.app
        app.delete("/fs/digits.txt", status=200)
        app.get("/fs/digits.txt", status=404)
        app.delete("/fs/digits.txt", status=404)

        app.delete("/fs/sub%20folder/", status=200)
        app.get("/fs/sub%20folder/", status=404)

        app.delete("/fs/", status=403)

    def testPost(self):
        app = self.app
        app.post_json("/fs/moved.txt", {"renameFrom": "/digits.txt"}, status=200)
        app.get("/fs/digits.txt", status=404)
        res = app.get("/fs/moved.txt", status=200)
        assert res.body == b"0123456789"

        app.post_json("/fs/copy.txt", {"copyFrom": "/moved.txt"}, status=200)
        res = app.get("/fs/copy.txt", status=200)
        assert res.body == b"0123456789"

        app.post_json("/fs/x.txt", {"renameFrom": "/missing.txt"}, status=404)
        app.post_json("/fs/x.txt", {"moveFrom": "/copy.txt"}, status=400)
        app.post_json("/fs/x.txt", {"renameFrom": 5}, status=400)
        app.post_json("/fs/x.txt", {"copyFrom": ["/copy.txt"]}, status=400)
        app.post_json("/fs/x", {"linkTo": {"a": 1}}, status=400)
        app.get("/fs/x.txt", status=404)

    @needs_symlinks
    def testPostSymlink(self):
        app = self.app
        app.post_json("/fs/link.txt", {"linkTo": "digits.txt"}, status=200)
        res = app.get("/fs/link.txt", status=200)
        assert res.body == b"0123456789"

    def testPropfind(self):
        res = self.app.request("/fs/digits.txt", method="PROPFIND", status=200)
        info = res.json
        assert info["name"] == "digits.txt"
        assert info["size"] == 10
        assert info["mime"] == "text/plain"

        self.app.request("/fs/missing.txt", method="PROPFIND", status=404)

    def testReadOnly(self):
        app = webtest.TestApp(self._makeRestVFSApp(self.root_path, read_only=True))
        app.put("/fs/file1.txt", b"data", status=404)
        app.delete("/fs/digits.txt", status=404)
        assert os.path.isfile(os.path.join(self.root_path, "digits.txt"))
        assert not os.path.exists(os.path.join(self.root_path, "file1.txt"))
        app.get("/fs/digits.txt", status=200)

    def testProviderFromOptions(self):
        app = webtest.TestApp(
            self._makeRestVFSApp(
                None,
                provider={
                    "class": "restvfs.fs_vfs_provider.FilesystemVFSProvider",
                    "args": [self.root_path],
                    "kwargs": {"follow_symlinks": False},
                },
            )
        )
        res = app.get("/fs/digits.txt", status=200)
        assert res.body == b"0123456789"


if __name__ == "__main__":
    unittest.main()
