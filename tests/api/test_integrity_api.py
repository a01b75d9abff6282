"""Tests for sync, validation and repair endpoints."""

from beaver_api.metrics import get_metrics_collector
from beaver_core.models.types import NodeLabel

API = "/api/v1"


class TestValidate:
    def test_unsynced_catalog_is_invalid(self, api_client, catalog):
        response = api_client.get(f"{API}/integrity/validate")

        assert response.status_code == 200
        report = response.json()
        assert report["valid"] is False
        environments = next(d for d in report["discrepancies"] if d["entity"] == "environments")
        assert environments == {
            "entity": "environments",
            "relational": 2,
            "graph": 0,
            "difference": 2,
            "count": None,
            "description": None,
            "details": None,
        }
        assert report["countsRelational"]["users"] == 2
        assert get_metrics_collector().get_metrics()["last_validation_valid"] is False

    def test_orphan_details(self, api_client, graph, catalog):
        api_client.post(f"{API}/integrity/sync")
        graph.nodes[(NodeLabel.COMPONENT_INSTANCE, 999)] = {"id": 999}

        report = api_client.get(f"{API}/integrity/validate").json()

        orphans = next(d for d in report["discrepancies"] if d["entity"] == "orphanedInstances")
        assert orphans["count"] == 1
        assert orphans["details"] == {"ids": [999]}

    def test_graph_outage(self, api_client, graph, catalog):
        graph.unavailable = True

        response = api_client.get(f"{API}/integrity/validate")

        assert response.status_code == 503
        assert response.json()["title"] == "Graph Store Unavailable"


class TestSync:
    def test_full_sync_then_valid(self, api_client, catalog):
        response = api_client.post(f"{API}/integrity/sync")

        assert response.status_code == 200
        synced = response.json()["synced"]
        assert [s["entity"] for s in synced][:3] == ["user", "environment", "component"]
        assert api_client.get(f"{API}/integrity/validate").json()["valid"] is True

    def test_single_entity(self, api_client, graph, catalog):
        response = api_client.post(f"{API}/integrity/sync/environment")

        assert response.json() == {"synced": [{"entity": "environment", "rows": 2, "relationships": 0, "derived": 0}]}
        assert graph.has_node(NodeLabel.ENVIRONMENT, catalog["production"]["id"])

    def test_unknown_entity(self, api_client):
        assert api_client.post(f"{API}/integrity/sync/widget").status_code == 422


class TestRepair:
    def test_repair_converges(self, api_client, catalog):
        response = api_client.post(f"{API}/integrity/repair")

        assert response.status_code == 200
        report = response.json()
        assert report["fixed"] is True
        assert report["finalReport"]["valid"] is True
        assert all(c["status"] == "success" for c in report["corrections"])
        assert get_metrics_collector().get_metrics()["repairs"] == 1

    def test_repair_of_valid_graph_is_noop(self, api_client, graph, catalog):
        api_client.post(f"{API}/integrity/sync")
        writes = graph.writes

        report = api_client.post(f"{API}/integrity/repair").json()

        assert report["fixed"] is True
        assert report["corrections"] == []
        assert graph.writes == writes

    def test_failed_actions_reported(self, api_client, graph, catalog):
        graph.fail_writes = True

        report = api_client.post(f"{API}/integrity/repair").json()

        assert report["fixed"] is False
        assert report["corrections"][0]["status"] == "failed"
        assert report["corrections"][0]["error"] == "simulated graph write failure"
        assert get_metrics_collector().get_metrics()["repair_failures"] == 1

    def test_fail_fast(self, api_client, graph, catalog):
        graph.fail_writes = True

        response = api_client.post(f"{API}/integrity/repair", params={"fail_fast": True})

        assert response.status_code == 502
        assert response.json()["title"] == "Graph Store Error"
