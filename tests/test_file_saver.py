import os
import tempfile
import unittest
from unittest.mock import MagicMock

from sitearchiver.errors import PersistenceFailure
from sitearchiver.file_saver import file_full_path, persist, split_url, storage_url


class TestPathMapping(unittest.TestCase):
    def test_split_url(self):
        self.assertEqual(split_url("https://example.com/a/b/logo.png"), ("example.com/a/b", "logo.png"))
        self.assertEqual(split_url("https://example.com/a/"), ("example.com/a", "index"))
        self.assertEqual(split_url("https://example.com/"), ("example.com", "index"))
        self.assertEqual(split_url("https://example.com"), ("", "example.com"))

    def test_split_url_drops_dot_segments(self):
        self.assertEqual(split_url("https://example.com/../../etc/passwd"), ("example.com/etc", "passwd"))
        self.assertEqual(split_url("https://example.com/a/./.."), ("example.com/a", "index"))
        self.assertEqual(split_url("http:///tmp/x"), ("tmp", "x"))

    def test_storage_url_decodes_and_drops_port(self):
        self.assertEqual(storage_url("https://h:8080/a%20b/c"), "https://h/a b/c")
        self.assertEqual(storage_url("https://h/plain"), "https://h/plain")

    def test_file_full_path(self):
        self.assertEqual(
            file_full_path("out", "https://example.com/a/"),
            os.path.join("out", "example.com/a", "index"),
        )


class TestPersist(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.out = tmp.name

    def read(self, *parts):
        with open(os.path.join(self.out, *parts), "rb") as f:
            return f.read()

    def test_writes_body_under_derived_path(self):
        self.assertTrue(persist(self.out, "https://example.com/img/logo.png", b"\x89PNG", False))
        self.assertEqual(self.read("example.com", "img", "logo.png"), b"\x89PNG")

    def test_directory_url_becomes_index(self):
        persist(self.out, "https://example.com/docs/", "<html>é</html>", False)
        self.assertEqual(self.read("example.com", "docs", "index"), "<html>é</html>".encode("utf-8"))

    def test_sibling_urls_share_directories(self):
        persist(self.out, "https://example.com/a/one.css", b"1", False)
        persist(self.out, "https://example.com/a/two.css", b"2", False)
        self.assertEqual(sorted(os.listdir(os.path.join(self.out, "example.com", "a"))), ["one.css", "two.css"])

    def test_skip_if_exists(self):
        fs = MagicMock()
        fs.file_exists.return_value = True
        self.assertFalse(persist(self.out, "https://example.com/a.html", b"new", False, fs=fs))
        fs.ensure_directory.assert_called_once_with(os.path.join(self.out, "example.com"))
        fs.write_bytes.assert_not_called()

    def test_existing_file_is_not_touched(self):
        url = "https://example.com/a.html"
        persist(self.out, url, b"first", False)
        path = os.path.join(self.out, "example.com", "a.html")
        mtime = os.stat(path).st_mtime_ns

        self.assertFalse(persist(self.out, url, b"second", False))
        self.assertEqual(self.read("example.com", "a.html"), b"first")
        self.assertEqual(os.stat(path).st_mtime_ns, mtime)

    def test_overwrite(self):
        url = "https://example.com/a.html"
        persist(self.out, url, b"first", False)
        self.assertTrue(persist(self.out, url, b"second", True))
        self.assertEqual(self.read("example.com", "a.html"), b"second")

    def test_none_body_is_not_written(self):
        self.assertFalse(persist(self.out, "https://example.com/none", None, False))
        self.assertFalse(os.path.exists(os.path.join(self.out, "example.com", "none")))
        self.assertTrue(os.path.isdir(os.path.join(self.out, "example.com")))

    def test_empty_body_is_written(self):
        self.assertTrue(persist(self.out, "https://example.com/empty", b"", False))
        self.assertEqual(self.read("example.com", "empty"), b"")

    def test_file_directory_collision_is_skipped(self):
        persist(self.out, "https://example.com/blog", b"listing", False)

        self.assertFalse(persist(self.out, "https://example.com/blog/post", b"post", False))
        self.assertFalse(persist(self.out, "https://example.com/blog/2024/post", b"post", False))
        self.assertEqual(self.read("example.com", "blog"), b"listing")

    def test_file_over_existing_directory_is_a_collision(self):
        persist(self.out, "https://example.com/blog/", b"listing", False)

        with self.assertLogs("sitearchiver.file_saver", level="WARNING") as logs:
            self.assertFalse(persist(self.out, "https://example.com/blog", b"page", False))
        self.assertIn("[COLLISION]", logs.output[0])
        self.assertEqual(self.read("example.com", "blog", "index"), b"listing")

    def test_encoded_parent_segments_stay_inside_archive(self):
        archive = os.path.join(self.out, "archive")
        url = storage_url("https://example.com/..%2F..%2Fescaped.txt")

        self.assertTrue(persist(archive, url, b"x", False))
        self.assertEqual(os.listdir(self.out), ["archive"])
        self.assertEqual(self.read("archive", "example.com", "escaped.txt"), b"x")

    def test_symlink_out_of_archive_is_skipped(self):
        archive = os.path.join(self.out, "archive")
        outside = os.path.join(self.out, "outside")
        os.makedirs(os.path.join(archive, "example.com"))
        os.makedirs(outside)
        os.symlink(outside, os.path.join(archive, "example.com", "link"))

        with self.assertLogs("sitearchiver.file_saver", level="WARNING") as logs:
            self.assertFalse(persist(archive, "https://example.com/link/x.txt", b"x", False))
        self.assertIn("[ESCAPE]", logs.output[0])
        self.assertEqual(os.listdir(outside), [])

    def test_write_error_is_fatal(self):
        fs = MagicMock()
        fs.file_exists.return_value = False
        fs.write_bytes.side_effect = PermissionError("read-only")
        with self.assertRaises(PersistenceFailure):
            persist(self.out, "https://example.com/a.html", b"x", False, fs=fs)

    def test_directory_error_is_fatal(self):
        fs = MagicMock()
        fs.ensure_directory.side_effect = OSError("disk full")
        with self.assertRaises(PersistenceFailure) as cm:
            persist(self.out, "https://example.com/a/b.html", b"x", False, fs=fs)
        self.assertIn("disk full", str(cm.exception))
        fs.write_bytes.assert_not_called()


if __name__ == "__main__":
    unittest.main()
