"""Tests for the typedrow package surface."""

import importlib

import pytest

import typedrow


class TestPackageImport:
    """Test that the package and its modules import cleanly."""

    @pytest.mark.parametrize(
        "module",
        [
            "typedrow.convert",
            "typedrow.crud",
            "typedrow.deserialize",
            "typedrow.dialect",
            "typedrow.errors",
            "typedrow.executor",
            "typedrow.fields",
            "typedrow.logging",
            "typedrow.registry",
            "typedrow.serialize",
            "typedrow.settings",
            "typedrow.shape",
            "typedrow.snapshot",
            "typedrow.statements",
            "typedrow.types",
        ],
    )
    def test_module_imports(self, module):
        assert importlib.import_module(module).__name__ == module

    def test_every_exported_name_resolves(self):
        missing = [name for name in typedrow.__all__ if not hasattr(typedrow, name)]
        assert missing == []

    def test_version(self):
        assert typedrow.__version__ == "0.1.0"
