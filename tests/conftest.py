"""Shared test fixtures for termxfer."""

import logging
import os

import pytest
from keyring.backends import fail

from termxfer.config import Config
from termxfer.host.local import LocalBridge
from termxfer.ui import AppController
from support import MemoryBridge


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the user's configuration and editor settings."""
    monkeypatch.setenv("TERMXFER_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.delenv("TERMXFER_EDITOR", raising=False)
    monkeypatch.delenv("EDITOR", raising=False)
    yield
    logging.getLogger().handlers = [
        h for h in logging.getLogger().handlers if not isinstance(h, logging.FileHandler)
    ]


@pytest.fixture
def config(tmp_path):
    return Config(tmp_path / "config")


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "local"
    root.mkdir()
    return root


@pytest.fixture
def local_bridge(local_root):
    bridge = LocalBridge(str(local_root))
    bridge.connect()
    yield bridge
    bridge.close()


@pytest.fixture
def memory_bridge():
    bridge = MemoryBridge()
    bridge.connect()
    return bridge


def write_tree(root, files):
    """Create files under ``root`` from a {relative path: bytes} mapping."""
    for relative, data in files.items():
        path = os.path.join(str(root), *relative.split("/"))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)


@pytest.fixture
def remote_bridge():
    return MemoryBridge().add_dir("/srv/site").add_file("/srv/readme.txt", b"remote")


@pytest.fixture
def controller(config, local_root, remote_bridge, monkeypatch):
    """Controller over ``local_root`` whose remote connections reach ``remote_bridge``."""

    def build(profile):
        remote_bridge.profile = profile
        return remote_bridge

    monkeypatch.setattr("termxfer.ui.controller.build_bridge", build)
    write_tree(local_root, {"index.html": b"<html>", "site/style.css": b"body{}"})
    app = AppController.create(config, str(local_root), secret_backend=fail.Keyring())
    yield app
    app.shutdown()
