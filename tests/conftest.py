import os

import pytest


@pytest.fixture(autouse=True)
def restore_environ():
    """WallLaunchConfig mirrors itself into WALL_* env vars; undo that after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
