import io
import sqlite3
import unittest
from contextlib import redirect_stdout

from msstore.io.schema import SpectrumInput, StoreOptions, create_store
from msstore.utils.inspect import print_store_structure


class TestStoreInspect(unittest.TestCase):
    def setUp(self):
        # --- Create a small store with two spectra ---
        self.conn = sqlite3.connect(":memory:")
        create_store(
            self.conn,
            [
                SpectrumInput(mz=[100.0, 200.0], intensity=[1.0, 2.0]),
                SpectrumInput(mz=[150.0], intensity=[3.0], extra={"title": "b"}),
            ],
            StoreOptions(peak_format="exploded", extra_variables={"title": "TEXT"}),
        )

    def tearDown(self):
        self.conn.close()

    def test_print_store_structure(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            print_store_structure(self.conn)
        out = buf.getvalue()

        self.assertIn("paramstyle=qmark", out)
        self.assertIn("[Settings]", out)
        self.assertIn("@peak_format     : exploded", out)
        self.assertIn("[Table] settings rows=1", out)
        self.assertIn("[Table] spectra rows=2", out)
        self.assertIn("[Table] peaks rows=3", out)
        self.assertIn("[Variable] title TEXT", out)

    def test_hide_variables(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            print_store_structure(self.conn, show_variables=False)
        self.assertNotIn("[Variable]", buf.getvalue())


if __name__ == "__main__":
    unittest.main()
