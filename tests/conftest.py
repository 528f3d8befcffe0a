"""pytest configuration for VoxEdit tests."""

import pytest

from voxedit.models import Element


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def sample_tree() -> list[Element]:
    """A small landing page: header, hero with nested button, footer."""
    return [
        Element.model_validate({
            "id": "1:1", "name": "Header", "type": "FRAME",
            "children": [
                {"id": "1:2", "name": "Logo", "type": "RECTANGLE"},
                {"id": "1:3", "name": "Header Text", "type": "TEXT", "characters": "Welcome"},
            ],
        }),
        Element.model_validate({
            "id": "2:1", "name": "Hero", "type": "FRAME",
            "children": [
                {"id": "2:2", "name": "Hero Img", "type": "RECTANGLE"},
                {"id": "2:3", "name": "Login Button", "type": "RECTANGLE"},
                {"id": "2:4", "name": "", "type": "GROUP"},
            ],
        }),
        Element.model_validate({"id": "3:1", "name": "Footer", "type": "FRAME", "children": []}),
    ]
