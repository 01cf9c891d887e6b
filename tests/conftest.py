"""
Shared fixtures: temporary npm projects and an in-memory npm registry.
"""

import io
import json
import logging
import tarfile
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import unquote

import httpx
import pytest

from npm_license_report.error_handling import setup_error_handling
from npm_license_report.structured_logging import ROOT_LOGGER_NAME

REGISTRY_HOST = "registry.npmjs.org"
SPDX_HOST = "raw.githubusercontent.com"

MIT_TEXT = """MIT License

Copyright (c) 2020 Example Authors

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files."""


@pytest.fixture(autouse=True)
def reset_logging_and_errors():
    """Give every test a fresh error handler and an unconfigured package logger."""
    setup_error_handling()
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def temp_dir(tmp_path):
    return tmp_path


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def gen3_lock(packages: Dict[str, Dict]) -> Dict:
    return {
        "name": "app",
        "lockfileVersion": 3,
        "packages": {"": {"name": "app"}, **packages},
    }


def gen1_lock(dependencies: Dict[str, Dict]) -> Dict:
    return {"name": "app", "lockfileVersion": 1, "dependencies": dependencies}


def make_tarball(files: Dict[str, str]) -> bytes:
    """Build a .tgz in memory from ``{member name: text}``."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def make_project(tmp_path):
    """
    Factory writing an npm project below tmp_path.

    ``installed`` maps package names to the package.json written into
    node_modules; ``files`` maps paths relative to the project to contents.
    """

    def build(
        manifest: Dict,
        lock: Optional[Dict] = None,
        installed: Optional[Dict[str, Dict]] = None,
        files: Optional[Dict[str, str]] = None,
        root_name: str = "project",
    ) -> Path:
        root = tmp_path / root_name
        root.mkdir(parents=True, exist_ok=True)
        write_json(root / "package.json", manifest)
        if lock is not None:
            write_json(root / "package-lock.json", lock)
        for name, package_json in (installed or {}).items():
            write_json(root / "node_modules" / name / "package.json", package_json)
        for relative, content in (files or {}).items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return build


class FakeNpmNetwork:
    """httpx.MockTransport backend serving registry documents, SPDX texts and tarballs."""

    def __init__(self):
        self.documents: Dict[str, Dict] = {}
        self.spdx_texts: Dict[str, str] = {}
        self.tarballs: Dict[str, bytes] = {}
        self.requests: List[httpx.Request] = []

    def add_package(self, name: str, version: str, license=None, tarball=None, homepage=None, **extra):
        document = self.documents.setdefault(
            name, {"name": name, "dist-tags": {}, "versions": {}}
        )
        document["dist-tags"]["latest"] = version
        version_data = {"name": name, "version": version, "dist": {}}
        if tarball:
            version_data["dist"]["tarball"] = tarball
        if license is not None:
            document["license"] = license
        if homepage:
            document["homepage"] = homepage
        document.update(extra)
        document["versions"][version] = version_data
        return document

    @property
    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url in self.tarballs:
            return httpx.Response(200, content=self.tarballs[url])

        if request.url.host == REGISTRY_HOST:
            name = unquote(request.url.path.lstrip("/"))
            if name in self.documents:
                return httpx.Response(200, json=self.documents[name])
            return httpx.Response(404, json={"error": "Not found"})

        if request.url.host == SPDX_HOST:
            identifier = request.url.path.rsplit("/", 1)[-1][: -len(".txt")]
            if identifier in self.spdx_texts:
                return httpx.Response(200, text=self.spdx_texts[identifier])
            return httpx.Response(404, text="404: Not Found")

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_network():
    return FakeNpmNetwork()
