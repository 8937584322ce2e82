"""Tests for delegate loading and capability helpers."""

import sys
import types
from pathlib import Path

import pytest

from brokkr.plugins.delegate import AdminAccess, LoaderDelegate, load_delegate


class MinimalDelegate(LoaderDelegate):
    async def load(self, artifact_path):
        return None

    async def unload(self, plugin_id):
        return True

    async def enable(self, plugin_id):
        return True

    async def disable(self, plugin_id):
        return True

    def list_loaded(self):
        return []

    def plugins_directory(self):
        return Path("/tmp/plugins")


class FutureDelegate(MinimalDelegate):
    api_version = 99


@pytest.fixture
def host_module(monkeypatch):
    module = types.ModuleType("fake_host")
    module.MinimalDelegate = MinimalDelegate
    module.FutureDelegate = FutureDelegate
    module.make = lambda: MinimalDelegate()
    module.not_a_delegate = lambda: object()
    monkeypatch.setitem(sys.modules, "fake_host", module)
    return module


def test_load_delegate_from_class(host_module):
    assert isinstance(load_delegate("fake_host:MinimalDelegate"), MinimalDelegate)


def test_load_delegate_from_factory(host_module):
    assert isinstance(load_delegate("fake_host:make"), MinimalDelegate)


@pytest.mark.parametrize(
    "target,message",
    [
        ("fake_host", "module:factory"),
        ("fake_host:missing", "has no attribute"),
        ("fake_host:not_a_delegate", "did not produce"),
        ("fake_host:FutureDelegate", "newer than supported"),
        ("no_such_module_xyz:make", "Cannot import"),
    ],
)
def test_load_delegate_rejects(host_module, target, message):
    with pytest.raises(ValueError, match=message):
        load_delegate(target)


def test_capability_defaults():
    delegate = MinimalDelegate()
    assert delegate.host_version() is None
    assert delegate.admin() is None
    assert delegate.access_token() is None
    assert delegate.is_admin() is False


def test_admin_capability(mocker):
    delegate = MinimalDelegate()
    mocker.patch.object(delegate, "admin", return_value=AdminAccess("tok", is_admin=True))
    assert delegate.access_token() == "tok"
    assert delegate.is_admin() is True
