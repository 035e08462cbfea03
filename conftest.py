"""
Root pytest configuration for the payments service.

pytest-django reads DJANGO_SETTINGS_MODULE from pyproject.toml; this only
guarantees the same default when tests are started another way.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
