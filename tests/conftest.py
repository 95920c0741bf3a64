"""Pytest configuration for arwah tests."""

from __future__ import annotations

import pytest

from .utils import TEMPLATE_COLOR, gradient_photo, png_bytes, solid


@pytest.fixture
def template():
    # 400x500: anchor (200, 200); at circle_size 0.2 the radius is 80.
    return solid((400, 500), TEMPLATE_COLOR)


@pytest.fixture
def photo():
    return gradient_photo((320, 240))


@pytest.fixture
def photo_bytes(photo):
    return png_bytes(photo)
