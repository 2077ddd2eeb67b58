from __future__ import annotations

import io
import os
import tempfile
import unittest

from listing import LocalListingSource
from progress_view import ProgressView
from walker import SiteWalk, WalkGroup


class ProgressViewTest(unittest.TestCase):
    def test_renders_counts_and_done_marker(self) -> None:
        with tempfile.TemporaryDirectory() as root:
            for name in ("a.txt", "b.txt"):
                open(os.path.join(root, name), "w").close()
            walks = [SiteWalk("Site 1", root, LocalListingSource(root)), SiteWalk("Site 2", root, LocalListingSource(root))]
            stream = io.StringIO()
            view = ProgressView(walks, interval=0.01, stream=stream)
            group = WalkGroup(walks)
            group.start()
            view.start()
            group.wait()
            view.stop()

        output = stream.getvalue()
        self.assertIn("Site 1:", output)
        self.assertIn("Site 2:", output)
        self.assertIn("2 files and directories - DONE!", output)

    def test_status_line_before_completion(self) -> None:
        walk = SiteWalk("Mirror", "/srv", LocalListingSource("/srv"))
        walk.counter.incr()
        line = ProgressView.status_line(walk)
        self.assertTrue(line.startswith("Mirror:"))
        self.assertIn("1 files and directories", line)
        self.assertNotIn("DONE", line)

    def test_disabled_view_writes_nothing(self) -> None:
        stream = io.StringIO()
        view = ProgressView([], enabled=False, stream=stream)
        view.start()
        view.stop()
        self.assertEqual(stream.getvalue(), "")


if __name__ == "__main__":
    unittest.main(verbosity=2)
