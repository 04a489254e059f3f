"""Health check tests for the REST endpoint and the GraphQL field."""
import pytest


def test_health_endpoint(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "malta-invoicing"}


@pytest.mark.django_db
def test_graphql_health_without_token(client):
    response = client.post(
        "/graphql", {"query": "{ health }"}, content_type="application/json"
    )
    assert response.status_code == 200
    assert response.json() == {"data": {"health": "ok"}}
