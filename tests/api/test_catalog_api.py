"""Tests for catalogue endpoints: environments, teams, users, components, instances."""

from beaver_api.metrics import get_metrics_collector
from beaver_core.models.types import NodeLabel, RelType

API = "/api/v1"


class TestEnvironments:
    def test_create_environment(self, api_client, graph):
        response = api_client.post(f"{API}/environments", json={"name": "production", "description": "Live"})

        assert response.status_code == 201
        data = response.json()
        assert data["entity"]["name"] == "production"
        assert data["sync"] == {"status": "ok", "warning": None, "sync_failed": False}
        assert graph.has_node(NodeLabel.ENVIRONMENT, data["entity"]["id"])

    def test_list_and_get(self, api_client, catalog):
        names = [env["name"] for env in api_client.get(f"{API}/environments").json()]
        assert names == ["production", "staging"]

        env_id = catalog["staging"]["id"]
        assert api_client.get(f"{API}/environments/{env_id}").json()["name"] == "staging"

    def test_get_missing(self, api_client):
        response = api_client.get(f"{API}/environments/404")

        assert response.status_code == 404
        problem = response.json()
        assert problem["status"] == 404
        assert "Environment not found" in problem["detail"]

    def test_duplicate_name_conflict(self, api_client, catalog):
        response = api_client.post(f"{API}/environments", json={"name": "production"})

        assert response.status_code == 409
        assert response.json()["title"] == "Constraint Violation"

    def test_delete_in_use_conflict(self, api_client, catalog):
        response = api_client.delete(f"{API}/environments/{catalog['production']['id']}")

        assert response.status_code == 409
        assert response.json()["title"] == "Catalog Rule Violation"

    def test_update_missing(self, api_client):
        response = api_client.patch(f"{API}/environments/404", json={"name": "nowhere"})

        assert response.status_code == 404

    def test_empty_name_rejected(self, api_client):
        assert api_client.post(f"{API}/environments", json={"name": ""}).status_code == 422


class TestSyncOutcome:
    def test_synced_write_sets_ok_header(self, api_client, graph):
        response = api_client.post(f"{API}/teams", json={"name": "Platform"})

        assert response.status_code == 201
        assert response.headers["X-Beaver-Sync"] == "ok"
        assert "X-Beaver-Sync" not in api_client.get(f"{API}/teams").headers

    def test_graph_failure_is_a_warning(self, api_client, graph):
        graph.fail_writes = True

        response = api_client.post(f"{API}/teams", json={"name": "Platform"})

        assert response.status_code == 201
        sync = response.json()["sync"]
        assert sync["status"] == "warning"
        assert sync["sync_failed"] is True
        assert "simulated graph write failure" in sync["warning"]
        assert response.headers["X-Beaver-Sync"] == "warning"
        assert get_metrics_collector().sync_metrics.sync_warnings == 1
        assert [team["name"] for team in api_client.get(f"{API}/teams").json()] == ["Platform"]

    def test_strict_policy_returns_502(self, api_client, graph, monkeypatch):
        monkeypatch.setenv("BEAVER_SYNC_POLICY", "strict")
        graph.fail_writes = True

        response = api_client.post(f"{API}/teams", json={"name": "Platform"})

        assert response.status_code == 502
        assert response.json()["title"] == "Graph Sync Failed"
        assert [team["name"] for team in api_client.get(f"{API}/teams").json()] == ["Platform"]

    def test_graph_outage_is_a_warning(self, api_client, graph):
        graph.unavailable = True

        response = api_client.post(f"{API}/users", json={"username": "bob"})

        assert response.status_code == 201
        assert response.json()["sync"]["sync_failed"] is True


class TestUsers:
    def test_create_user_with_role(self, api_client, graph):
        data = api_client.post(
            f"{API}/users", json={"username": "carol", "email": "carol@example.com", "role": "ARCHITECT"}
        ).json()

        assert data["entity"]["role"] == "ARCHITECT"
        assert graph.nodes[(NodeLabel.USER, data["entity"]["id"])]["role"] == "ARCHITECT"

    def test_invalid_role(self, api_client):
        assert api_client.post(f"{API}/users", json={"username": "carol", "role": "ROOT"}).status_code == 422

    def test_sole_owner_cannot_be_deleted(self, api_client, catalog):
        response = api_client.delete(f"{API}/users/{catalog['admin']['id']}")

        assert response.status_code == 409


class TestComponents:
    def test_create_with_team(self, api_client, graph, catalog):
        team_id = catalog["team"]["id"]
        api_client.post(f"{API}/integrity/sync/team")

        data = api_client.post(f"{API}/components", json={"name": "fraud-scorer", "team_id": team_id}).json()

        component_id = data["entity"]["id"]
        assert data["entity"]["status"] == "ACTIVE"
        assert graph.has_relationship(RelType.MANAGED_BY, component_id, team_id)

    def test_unknown_team(self, api_client):
        response = api_client.post(f"{API}/components", json={"name": "fraud-scorer", "team_id": 404})

        assert response.status_code == 404

    def test_status_change(self, api_client, catalog):
        component_id = catalog["worker"]["id"]

        data = api_client.patch(f"{API}/components/{component_id}", json={"status": "DEPRECATED"}).json()

        assert data["entity"]["status"] == "DEPRECATED"

    def test_delete_cascades_instances(self, api_client, graph, catalog):
        api_client.post(f"{API}/integrity/sync")
        api_id = catalog["api"]["id"]

        response = api_client.delete(f"{API}/components/{api_id}")

        assert response.status_code == 200
        assert api_client.get(f"{API}/instances", params={"component_id": api_id}).json() == []
        assert not graph.has_node(NodeLabel.COMPONENT_INSTANCE, catalog["api_prod"]["id"])


class TestInstances:
    def test_create_instance(self, api_client, graph, catalog):
        api_client.post(f"{API}/integrity/sync")
        worker_id, env_id = catalog["worker"]["id"], catalog["production"]["id"]

        response = api_client.post(
            f"{API}/instances",
            json={"component_id": worker_id, "environment_id": env_id, "specs": {"replicas": 3}},
        )

        assert response.status_code == 201
        instance = response.json()["entity"]
        assert instance["specs"] == {"replicas": 3}
        assert graph.has_relationship(RelType.INSTANTIATES, worker_id, instance["id"])
        assert graph.has_relationship(RelType.DEPLOYED_IN, instance["id"], env_id)

    def test_duplicate_pair_conflict(self, api_client, catalog):
        response = api_client.post(
            f"{API}/instances",
            json={"component_id": catalog["api"]["id"], "environment_id": catalog["production"]["id"]},
        )

        assert response.status_code == 409

    def test_filter_by_component(self, api_client, catalog):
        instances = api_client.get(f"{API}/instances", params={"component_id": catalog["api"]["id"]}).json()

        assert {i["hostname"] for i in instances} == {"payments-api-pro", "payments-api-sta"}
        assert api_client.get(f"{API}/instances", params={"component_id": catalog["worker"]["id"]}).json() == []

    def test_update_specs(self, api_client, catalog):
        instance_id = catalog["api_prod"]["id"]

        data = api_client.patch(f"{API}/instances/{instance_id}", json={"specs": {"cpu": 4}}).json()

        assert data["entity"]["specs"] == {"cpu": 4}
        assert api_client.get(f"{API}/instances/{instance_id}").json()["specs"] == {"cpu": 4}


def test_categories(api_client):
    assert api_client.post(f"{API}/categories", json={"name": "payments"}).status_code == 201
    assert [c["name"] for c in api_client.get(f"{API}/categories").json()] == ["payments"]
