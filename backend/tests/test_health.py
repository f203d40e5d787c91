def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_api_v1_credits_requires_auth(client):
    """Credits router is mounted — balance requires a bearer token."""
    response = client.get("/api/v1/credits/balance")
    assert response.status_code in (401, 403)


def test_api_v1_admin_requires_auth(client):
    response = client.get("/api/v1/admin/audit-logs")
    assert response.status_code in (401, 403)


def test_api_v1_webhooks_unknown_gateway(client):
    response = client.post("/api/v1/webhooks/paypal", content=b"{}")
    assert response.status_code == 404
