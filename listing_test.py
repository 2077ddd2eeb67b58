from __future__ import annotations

import os
import tempfile
import unittest
from unittest.mock import patch

import requests

from listing import (
    HttpListingSource,
    InvalidRootError,
    ListingError,
    LocalListingSource,
    is_network_root,
    source_for,
    validate_url,
)


def make_response(body: bytes, status: int = 200, url: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = body
    response._content_consumed = True
    response.url = url
    return response


class ValidateUrlTest(unittest.TestCase):
    def test_rejects_malformed_urls(self) -> None:
        bad = ["", "someurl.com", "file://somefile", "http:some/file/path", '"http://www.somehost.com/path"', "ftp://host/"]
        for url in bad:
            with self.subTest(url=url):
                with self.assertRaises(InvalidRootError):
                    validate_url(url)

    def test_accepts_http_and_https(self) -> None:
        for url in ("http://www.somehost.com/path", "https://www.somehost.com/path"):
            with self.subTest(url=url):
                self.assertEqual(validate_url(url), url)

    def test_network_root_detection(self) -> None:
        self.assertTrue(is_network_root("http://x/"))
        self.assertTrue(is_network_root("HTTPS://x/"))
        self.assertFalse(is_network_root("/srv/files"))
        self.assertFalse(is_network_root("relative/dir"))


class HttpListingSourceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.source = HttpListingSource("http://someurl.com/media")

    def test_root_gets_trailing_slash(self) -> None:
        self.assertEqual(self.source.root_url, "http://someurl.com/media/")

    def test_lists_children_and_skips_page_chrome(self) -> None:
        body = (
            b'<a href="?C=N;O=D">Name</a><a href="?C=M;O=A">Last modified</a>'
            b'<a href="/">Parent Directory</a>'
            b'<a href="dir1/">dir1</a><a href="dir2/">dir2/</a>'
            b'<a href="file3.mp4">file3.mp4</a>'
            b'<a href="it%27s.mp3">it\'s.mp3</a>'
            b'<a href="dir1/"><img src="folder.gif"></a>'
            b'<a href="http://elsewhere.com/x">offsite</a>'
        )
        with patch.object(self.source.session, "get", return_value=make_response(body)) as fake_get:
            entries = self.source.list_children("")

        fake_get.assert_called_once()
        self.assertEqual(fake_get.call_args[0][0], "http://someurl.com/media/")
        self.assertEqual(
            [(e.name, e.href, e.is_dir) for e in entries],
            [
                ("dir1", "dir1/", True),
                ("dir2/", "dir2/", True),
                ("file3.mp4", "file3.mp4", False),
                ("it's.mp3", "it%27s.mp3", False),
            ],
        )

    def test_absolute_hrefs_are_made_relative_to_the_node(self) -> None:
        body = b'<a href="/media/sub/a.txt">a.txt</a><a href="/media/">media</a><a href="/other/b.txt">b.txt</a>'
        with patch.object(self.source.session, "get", return_value=make_response(body)) as fake_get:
            entries = self.source.list_children("sub/")

        self.assertEqual(fake_get.call_args[0][0], "http://someurl.com/media/sub/")
        self.assertEqual([(e.name, e.href) for e in entries], [("a.txt", "a.txt")])

    def test_anchor_names_with_path_segments_are_dropped(self) -> None:
        body = (
            b'<a href="evil.txt">../../escaped.txt</a>'
            b'<a href="x.txt">sub/x.txt</a>'
            b'<a href="up/">../</a>'
            b'<a href="dir3/">dir3/</a>'
        )
        with patch.object(self.source.session, "get", return_value=make_response(body)):
            entries = self.source.list_children("")
        self.assertEqual([(e.name, e.href) for e in entries], [("dir3/", "dir3/")])

    def test_http_error_is_fatal(self) -> None:
        with patch.object(self.source.session, "get", return_value=make_response(b"nope", status=404, url="http://someurl.com/media/")):
            with self.assertRaises(ListingError):
                self.source.list_children("")

    def test_transport_error_is_fatal(self) -> None:
        with patch.object(self.source.session, "get", side_effect=requests.ConnectionError("refused")):
            with self.assertRaises(ListingError) as ctx:
                self.source.list_children("dir1/")
        self.assertIn("http://someurl.com/media/dir1/", str(ctx.exception))

    def test_credentials_set_basic_auth(self) -> None:
        source = HttpListingSource("http://someurl.com/", user="someguy", password="spaceballs")
        self.assertEqual(source.session.auth, ("someguy", "spaceballs"))
        self.assertIsNone(HttpListingSource("http://someurl.com/").session.auth)


class LocalListingSourceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name
        os.makedirs(os.path.join(self.root, "sub"))
        os.makedirs(os.path.join(self.root, ".git"))
        for rel in ("b.txt", "a.txt", ".hidden", os.path.join("sub", "c.txt")):
            with open(os.path.join(self.root, rel), "w", encoding="utf-8") as handle:
                handle.write(rel)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_lists_sorted_visible_children(self) -> None:
        entries = LocalListingSource(self.root).list_children("")
        self.assertEqual(
            [(e.name, e.href, e.is_dir) for e in entries],
            [("a.txt", "a.txt", False), ("b.txt", "b.txt", False), ("sub", "sub/", True)],
        )

    def test_lists_nested_locator(self) -> None:
        entries = LocalListingSource(self.root).list_children("sub/")
        self.assertEqual([e.name for e in entries], ["c.txt"])

    def test_permission_error_skips_directory(self) -> None:
        warnings = []
        blocked = os.path.join(self.root, "sub")
        real_scandir = os.scandir

        def _scandir(path):
            if path == blocked:
                raise PermissionError(13, "Permission denied")
            return real_scandir(path)

        source = LocalListingSource(self.root, on_warning=warnings.append)
        with patch("listing.os.scandir", side_effect=_scandir):
            self.assertEqual(source.list_children("sub/"), [])
        self.assertEqual(len(warnings), 1)
        self.assertIn(blocked, warnings[0])

    def test_unreadable_root_is_fatal(self) -> None:
        warnings = []
        source = LocalListingSource(self.root, on_warning=warnings.append)
        with patch("listing.os.scandir", side_effect=PermissionError(13, "Permission denied")):
            with self.assertRaises(ListingError) as ctx:
                source.list_children("")
        self.assertIn(os.path.abspath(self.root), str(ctx.exception))
        self.assertEqual(warnings, [])

    def test_source_for_dispatches_on_root_shape(self) -> None:
        self.assertIsInstance(source_for("https://host/"), HttpListingSource)
        self.assertIsInstance(source_for(self.root), LocalListingSource)


if __name__ == "__main__":
    unittest.main(verbosity=2)
