"""Pytest configuration and fixtures."""

import os
import plistlib
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import pytest

from manifest_generator.config import Settings

# Keep tests away from real AWS configuration
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

SAMPLE_INFO = {
    "CFBundleDisplayName": "Sample App",
    "CFBundleName": "Sample",
    "CFBundleIdentifier": "com.example.sample",
    "CFBundleShortVersionString": "1.2.3",
    "CFBundleVersion": "42",
}


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def binary_plist(data: dict[str, Any]) -> bytes:
    return plistlib.dumps(data, fmt=plistlib.FMT_BINARY)


def xml_plist(data: dict[str, Any]) -> bytes:
    return plistlib.dumps(data, fmt=plistlib.FMT_XML)


@pytest.fixture
def make_archive(temp_dir: Path) -> Callable[..., Path]:
    """Build a zip archive from a mapping of entry name to bytes."""
    counter = {"n": 0}

    def _make(entries: dict[str, bytes], name: str | None = None) -> Path:
        counter["n"] += 1
        path = temp_dir / (name or f"package-{counter['n']}.ipa")
        with zipfile.ZipFile(path, "w") as zf:
            for entry, content in entries.items():
                zf.writestr(entry, content)
        return path

    return _make


@pytest.fixture
def sample_ipa(make_archive: Callable[..., Path]) -> Path:
    """A package with a binary Info.plist."""
    return make_archive(
        {
            "Payload/Sample.app/Sample": b"\x00binary",
            "Payload/Sample.app/Info.plist": binary_plist(SAMPLE_INFO),
        }
    )


@pytest.fixture
def s3_client() -> MagicMock:
    """S3 client double; every call succeeds and buckets are empty."""
    client = MagicMock(name="s3")
    client.get_paginator.return_value.paginate.return_value = [{"Contents": []}]
    client.list_buckets.return_value = {"Buckets": []}
    return client


@pytest.fixture
def settings(temp_dir: Path) -> Settings:
    """Settings suitable for tests: no sweep, short expiration."""
    return Settings(
        expiration_delay=30,
        sweep_on_startup=False,
        worker_pool_size=2,
        aws_region="us-east-1",
    )
