"""Shared fixtures: a recording HTTP double and an isolated launcher root."""

import hashlib
import json
from pathlib import Path

import pytest

from mclaunch.auth.profile import AuthProfile
from mclaunch.config import LauncherConfig
from mclaunch.errors import NetworkFailure


class FakeHTTP:
    """Serves canned responses and records every request.

    ``failures`` maps a URL to how many times it fails before succeeding.
    Unknown URLs fail like a 404.
    """

    def __init__(self, json_bodies=None, texts=None, files=None, lengths=None, failures=None):
        self.json_bodies = dict(json_bodies or {})
        self.texts = dict(texts or {})
        self.files = dict(files or {})
        self.lengths = dict(lengths or {})
        self.failures = dict(failures or {})
        self.calls = []

    def _check(self, method, url, known):
        self.calls.append((method, url))
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise NetworkFailure(f"{method} {url} failed: connection reset", url)
        if url not in known:
            raise NetworkFailure(f"{method} {url} failed: 404", url)

    async def get(self, url, headers=None):
        self._check("GET", url, self.json_bodies)
        return self.json_bodies[url]

    async def get_text(self, url, headers=None):
        self._check("GET", url, self.texts)
        return self.texts[url]

    async def head_length(self, url):
        self._check("HEAD", url, self.lengths)
        return self.lengths[url]

    async def download(self, url, dest: Path):
        self._check("DOWNLOAD", url, self.files)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.files[url])
        return len(self.files[url])


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path):
    return LauncherConfig(root_dir=tmp_path / "root", backoff_seconds=0)


@pytest.fixture
def http():
    return FakeHTTP()


@pytest.fixture
def profile():
    return AuthProfile(id="0b5a3c5e-6f4a-4e43-a3a0-1f2e3d4c5b6a", name="Steve", access_token="offline")
