from tests.conftest import API, auth_headers, sample_rows, user_id_for


def _users(client, admin_headers):
    return {u["email"]: u for u in client.get(f"{API}/admin/users", headers=admin_headers).json()}


def _own_id(client, admin_headers):
    return user_id_for(client, admin_headers, "root@example.com")


def test_list_users_omits_secrets(client, admin_headers, user_headers):
    users = _users(client, admin_headers)

    assert set(users) == {"root@example.com", "alice@example.com"}
    for user in users.values():
        assert "password" not in user
        assert "hashed_password" not in user
        assert not any(k.startswith("reset") for k in user)
    assert users["root@example.com"]["role"] == "admin"
    assert users["alice@example.com"]["isBlocked"] is False


def test_block_toggle_and_self_block_is_forbidden(client, admin_headers, user_headers):
    alice_id = user_id_for(client, admin_headers, "alice@example.com")

    resp = client.put(f"{API}/admin/user/{alice_id}/block", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "User blocked successfully"
    assert _users(client, admin_headers)["alice@example.com"]["isBlocked"] is True

    resp = client.put(f"{API}/admin/user/{_own_id(client, admin_headers)}/block", headers=admin_headers)
    assert resp.status_code == 403
    assert _users(client, admin_headers)["root@example.com"]["isBlocked"] is False

    resp = client.put(f"{API}/admin/user/{alice_id}/block", headers=admin_headers)
    assert resp.json()["message"] == "User unblocked successfully"
    assert _users(client, admin_headers)["alice@example.com"]["isBlocked"] is False


def test_change_role(client, admin_headers, user_headers):
    alice_id = user_id_for(client, admin_headers, "alice@example.com")
    url = f"{API}/admin/user/{alice_id}/role"

    assert client.put(url, json={"role": "superuser"}, headers=admin_headers).status_code == 400
    assert client.put(url, json={}, headers=admin_headers).status_code == 400

    resp = client.put(url, json={"role": "admin"}, headers=admin_headers)
    assert resp.status_code == 200
    assert _users(client, admin_headers)["alice@example.com"]["role"] == "admin"


def test_admin_cannot_change_own_role_or_delete_self(client, admin_headers):
    own_id = _own_id(client, admin_headers)

    resp = client.put(f"{API}/admin/user/{own_id}/role", json={"role": "user"}, headers=admin_headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "You cannot modify your own account"
    assert client.delete(f"{API}/admin/user/{own_id}", headers=admin_headers).status_code == 403

    me = _users(client, admin_headers)["root@example.com"]
    assert me["role"] == "admin"


def test_missing_target_is_not_found(client, admin_headers):
    for method, path, body in (
        ("put", "role", {"role": "user"}),
        ("put", "block", None),
    ):
        resp = client.request(method.upper(), f"{API}/admin/user/424242/{path}", json=body,
                              headers=admin_headers)
        assert resp.status_code == 404
    assert client.delete(f"{API}/admin/user/424242", headers=admin_headers).status_code == 404


def test_delete_user_keeps_their_charts(client, admin_headers, user_headers):
    client.post(f"{API}/charts/save", headers=user_headers, json={
        "chartType": "bar", "xKey": "Month", "yKey": "Sales", "title": "t", "data": sample_rows(),
    })
    alice_id = user_id_for(client, admin_headers, "alice@example.com")

    resp = client.delete(f"{API}/admin/user/{alice_id}", headers=admin_headers)

    assert resp.status_code == 200
    assert "alice@example.com" not in _users(client, admin_headers)
    stats = client.get(f"{API}/admin/stats", headers=admin_headers).json()
    assert stats["totalCharts"] == 1


def test_platform_stats(client, admin_headers, user_headers):
    empty = client.get(f"{API}/admin/stats", headers=admin_headers).json()
    assert empty == {"totalUsers": 2, "blockedUsers": 0, "totalCharts": 0, "mostUsedChartType": "N/A"}

    bob = auth_headers(client, "bob@example.com")
    for headers, chart_type in ((user_headers, "line"), (user_headers, "line"), (bob, "pie")):
        client.post(f"{API}/charts/save", headers=headers, json={
            "chartType": chart_type, "xKey": "Month", "yKey": "Sales", "title": "t",
            "data": sample_rows(),
        })
    bob_id = user_id_for(client, admin_headers, "bob@example.com")
    client.put(f"{API}/admin/user/{bob_id}/block", headers=admin_headers)

    stats = client.get(f"{API}/admin/stats", headers=admin_headers).json()
    assert stats == {"totalUsers": 3, "blockedUsers": 1, "totalCharts": 3, "mostUsedChartType": "line"}
