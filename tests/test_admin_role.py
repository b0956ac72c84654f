"""
Tests for services/admin_role.py
"""
from unittest.mock import MagicMock

import pytest

from services.admin_role import AdminRole, fetch_admin_role


def client_returning(data):
    client = MagicMock()
    response = MagicMock()
    response.data = data
    client.rpc.return_value.execute.return_value = response
    return client


@pytest.mark.parametrize("data,expected", [
    ("admin", AdminRole.ADMIN),
    ("view_only", AdminRole.VIEW_ONLY),
    ("none", AdminRole.NONE),
    ("ADMIN", AdminRole.ADMIN),
    (["view_only"], AdminRole.VIEW_ONLY),
    ([{"get_admin_role": "admin"}], AdminRole.ADMIN),
    (None, AdminRole.NONE),
    ([], AdminRole.NONE),
    ("superuser", AdminRole.NONE),
])
def test_fetch_admin_role_parses_rpc_data(data, expected):
    client = client_returning(data)
    assert fetch_admin_role(client) is expected
    client.rpc.assert_called_once_with("get_admin_role")


def test_rpc_error_means_none():
    client = MagicMock()
    client.rpc.return_value.execute.side_effect = Exception("permission denied for function get_admin_role")

    assert fetch_admin_role(client) is AdminRole.NONE


def test_role_flags():
    assert AdminRole.ADMIN.is_admin and AdminRole.ADMIN.has_admin_access
    assert AdminRole.VIEW_ONLY.is_view_only and AdminRole.VIEW_ONLY.has_admin_access
    assert not AdminRole.VIEW_ONLY.is_admin
    assert not AdminRole.NONE.has_admin_access
