"""Shared helpers for the test suites."""

from __future__ import annotations

import io

from fastapi.testclient import TestClient
from PIL import Image

from crowdsolve.app import create_app
from crowdsolve.config import Settings


def make_settings(**overrides) -> Settings:
    values = {
        "use_in_memory_backends": True,
        "jwt_secret": "test-secret",
        "bcrypt_rounds": 4,
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_client(**overrides) -> tuple[TestClient, object]:
    """Return a test client and the backends container behind it."""
    app = create_app(make_settings(**overrides))
    return TestClient(app), app.state.backends


def image_bytes(size=(64, 48), mode="RGB", fmt="JPEG") -> bytes:
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
    output = io.BytesIO()
    Image.new(mode, size, color).save(output, format=fmt)
    return output.getvalue()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
