"""Test helpers package."""

from tests.helpers.fake_editor import FakeEditor
from tests.helpers.projects import create_project
from tests.helpers.wait import wait_until

__all__ = [
    "FakeEditor",
    "create_project",
    "wait_until",
]
