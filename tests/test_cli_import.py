"""Regression tests for importing the data layer without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest


class CLIImportTests(unittest.TestCase):
    def tearDown(self) -> None:
        self._clear_package_modules()

    @staticmethod
    def _clear_package_modules() -> None:
        for name in [m for m in list(sys.modules.keys()) if m == "messagely" or m.startswith("messagely.")]:
            sys.modules.pop(name, None)

    def test_import_stores_without_fastapi(self) -> None:
        """The stores back the admin console and must not pull in FastAPI."""

        self._clear_package_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None
        try:
            users_module = importlib.import_module("messagely.users")
            self.assertTrue(hasattr(users_module, "UserStore"))

            package = sys.modules.get("messagely")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "Database"))
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
