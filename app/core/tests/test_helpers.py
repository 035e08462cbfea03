"""
Tests for request helpers.
"""

import pytest
from django.test import RequestFactory

from core.helpers import get_client_ip, get_user_agent


@pytest.mark.parametrize(
    "meta,expected",
    [
        ({"HTTP_X_FORWARDED_FOR": "198.51.100.1, 10.0.0.1", "REMOTE_ADDR": "10.0.0.2"}, "198.51.100.1"),
        ({"REMOTE_ADDR": "10.0.0.2"}, "10.0.0.2"),
    ],
)
def test_get_client_ip(meta, expected):
    request = RequestFactory().get("/", **meta)

    assert get_client_ip(request) == expected


def test_get_user_agent():
    request = RequestFactory().get("/", HTTP_USER_AGENT="Mozilla/5.0")

    assert get_user_agent(request) == "Mozilla/5.0"
    assert get_user_agent(RequestFactory().get("/")) == ""
