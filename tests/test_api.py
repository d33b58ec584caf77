"""Tests for the control API, end to end through the FastAPI app."""

import json
import os

import pytest
from fastapi.testclient import TestClient

from mockfleet.models.node_record import validate_record
from mockfleet.orchestrator.app import create_app
from mockfleet.orchestrator.services.collaborators import OUI_KEY

from conftest import TEST_OUI, new_uuid, static_collaborators, write_node


@pytest.fixture
def client(cfg):
    app = create_app(cfg, collaborators=static_collaborators())
    with TestClient(app) as test_client:
        yield test_client


def create(client: TestClient, payload: dict | None = None, **kwargs):
    if payload is None:
        payload = {"Product": "Mini-Test-Node"}
    return client.post("/servers", json=payload, **kwargs)


class TestQueries:
    def test_empty_fleet(self, client):
        response = client.get("/servers")
        assert response.status_code == 200
        assert response.json() == []

    def test_unknown_server(self, client):
        response = client.get(f"/servers/{new_uuid()}")
        assert response.status_code == 404
        assert response.json()["code"] == "ResourceNotFound"

    def test_profiles(self, client):
        response = client.get("/profiles")
        assert response.status_code == 200
        names = {p["name"] for p in response.json()}
        assert {"PowerEdge C2100", "Mini-Test-Node"} <= names

    def test_existing_node_picked_up_at_startup(self, cfg):
        uuid = new_uuid()
        write_node(
            cfg.NODE_ROOT, uuid, {"UUID": uuid, "Product": "Mini-Test-Node"}
        )

        app = create_app(cfg, collaborators=static_collaborators())
        with TestClient(app) as client:
            response = client.get(f"/servers/{uuid}")

        assert response.status_code == 200
        assert response.json()["profile"] == "Mini-Test-Node"

    def test_profile_file_replaces_bundled_catalog(self, cfg, tmp_path):
        profile_file = tmp_path / "profiles.json"
        profile_file.write_text(
            json.dumps(
                {
                    "Lab Box": {
                        "Manufacturer": "Lab",
                        "Product": "Lab Box",
                        "MiB of Memory": 2048,
                        "CPU Type": "Virtual CPU",
                        "CPU Virtualization": "none",
                        "CPU Physical Cores": 1,
                        "CPU Total Cores": 2,
                        "Disks": {"c0t0d0": {"Size in GB": 20}},
                        "Network Interfaces": {"net0": {}},
                    }
                }
            )
        )
        cfg.PROFILE_FILE = str(profile_file)

        app = create_app(cfg, collaborators=static_collaborators())
        with TestClient(app) as client:
            profiles = client.get("/profiles").json()
            created = client.post("/servers", json={}).json()

        assert [p["name"] for p in profiles] == ["Lab Box"]
        assert created["profile"] == "Lab Box"


class TestCreate:
    def test_create_then_get(self, cfg, client):
        response = create(client)
        assert response.status_code == 201
        entry = response.json()
        uuid = entry["uuid"]

        assert entry["profile"] == "Mini-Test-Node"
        assert validate_record(entry["sysinfo"]) == []
        assert entry["sysinfo"]["Admin IP"] == "10.0.0.1"

        fetched = client.get(f"/servers/{uuid}")
        assert fetched.status_code == 200
        assert fetched.json() == entry

        node_dir = cfg.get_node_dir(uuid)
        with open(os.path.join(node_dir, "sysinfo.json")) as f:
            assert json.load(f) == entry["sysinfo"]
        with open(os.path.join(node_dir, "disks.json")) as f:
            disks = json.load(f)
        assert [d["name"] for d in disks] == ["c0t0d0"]
        assert os.path.exists(os.path.join(node_dir, "setup.json"))

        listed = client.get("/servers").json()
        assert [e["uuid"] for e in listed] == [uuid]

    def test_create_with_empty_body(self, client):
        response = client.post("/servers")
        assert response.status_code == 201
        mac = next(iter(response.json()["sysinfo"]["Network Interfaces"].values()))[
            "MAC Address"
        ]
        assert mac.startswith(TEST_OUI)

    def test_create_with_explicit_uuid(self, client):
        uuid = new_uuid()
        response = create(client, {"UUID": uuid, "Hostname": "chosen"})
        assert response.status_code == 201
        assert response.json()["uuid"] == uuid
        assert response.json()["sysinfo"]["Hostname"] == "chosen"

    def test_unknown_fields_dropped(self, client):
        response = create(client, {"Product": "Mini-Test-Node", "Favourite": "blue"})
        assert response.status_code == 201
        assert "Favourite" not in response.json()["sysinfo"]

    def test_duplicate_uuid_conflicts(self, client):
        uuid = new_uuid()
        original = create(client, {"UUID": uuid, "Product": "Mini-Test-Node"}).json()

        response = create(client, {"UUID": uuid, "Hostname": "other"})
        assert response.status_code == 409
        assert response.json()["code"] == "Conflict"
        assert client.get(f"/servers/{uuid}").json() == original

    def test_invalid_fields_listed(self, cfg, client):
        response = create(client, {"UUID": "nope", "CPU Total Cores": "many"})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "InvalidPayload"
        assert {e["field"] for e in body["errors"]} == {"UUID", "CPU Total Cores"}
        assert not os.path.exists(cfg.NODE_ROOT) or os.listdir(cfg.NODE_ROOT) == []

    @pytest.mark.parametrize(
        "payload, field",
        [
            ({"Network Interfaces": {"net0": {"MAC Address": 5}}}, "Network Interfaces"),
            ({"Network Interfaces": {"net0": {"ip4addr": "ten"}}}, "Network Interfaces"),
            ({"Network Interfaces": {"net0": {"Link Status": 1}}}, "Network Interfaces"),
            ({"Disks": {"c0t0d0": {"Size in GB": 600, "VID": 5}}}, "Disks"),
            ({"Disks": {"c0t0d0": {"Size in GB": -5}}}, "Disks"),
            ({"Disks": {"c0t0d0": {"SSD": "yes"}}}, "Disks"),
        ],
    )
    def test_malformed_nested_fields_rejected(self, client, payload, field):
        response = create(client, payload)
        assert response.status_code == 400
        assert [e["field"] for e in response.json()["errors"]] == [field]
        assert client.get("/servers").json() == []

    def test_payload_mac_cannot_collide(self, client):
        first = create(client).json()
        first_mac = first["sysinfo"]["Network Interfaces"]
        first_mac = next(iter(first_mac.values()))["MAC Address"]

        response = create(
            client,
            {
                "Network Interfaces": {
                    "net0": {"MAC Address": first_mac, "NIC Names": ["admin"]}
                }
            },
        )
        assert response.status_code == 201
        second_mac = response.json()["sysinfo"]["Network Interfaces"]["net0"][
            "MAC Address"
        ]
        assert second_mac != first_mac

    def test_invalid_json(self, client):
        response = client.post(
            "/servers",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "InvalidJSON"

    def test_non_object_body(self, client):
        response = client.post("/servers", json=["a", "b"])
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "NotAnObject"

    def test_missing_host_metadata(self, cfg):
        collaborators = static_collaborators(metadata_values={OUI_KEY: TEST_OUI})
        app = create_app(cfg, collaborators=collaborators)
        with TestClient(app) as client:
            response = create(client)
            listed = client.get("/servers").json()
            ledger = client.app.state.ledger

        assert response.status_code == 502
        assert response.json()["code"] == "MetadataError"
        assert listed == []
        assert len(ledger) == 0


class TestDelete:
    def test_delete(self, cfg, client):
        uuid = create(client).json()["uuid"]

        response = client.delete(f"/servers/{uuid}")
        assert response.status_code == 204
        assert response.content == b""

        assert client.get(f"/servers/{uuid}").status_code == 404
        assert not os.path.exists(cfg.get_node_dir(uuid))
        assert client.app.state.ledger.get_index(uuid) is not None

    def test_delete_unknown(self, client):
        response = client.delete(f"/servers/{new_uuid()}")
        assert response.status_code == 404

    def test_new_node_after_delete_gets_fresh_index(self, client):
        first = create(client).json()
        client.delete(f"/servers/{first['uuid']}")
        second = create(client).json()

        ledger = client.app.state.ledger
        assert ledger.get_index(second["uuid"]) == ledger.get_index(first["uuid"]) + 1

    def test_delete_node_whose_sandbox_never_started(self, cfg):
        uuid = new_uuid()
        os.makedirs(cfg.get_node_dir(uuid))

        app = create_app(cfg, collaborators=static_collaborators())
        with TestClient(app) as client:
            assert client.get(f"/servers/{uuid}").status_code == 404
            assert create(client, {"UUID": uuid}).status_code == 409

            response = client.delete(f"/servers/{uuid}")
            assert response.status_code == 204
            assert not os.path.exists(cfg.get_node_dir(uuid))
            assert create(client, {"UUID": uuid}).status_code == 201


class TestFleetService:
    def test_query_methods_on_running_app(self, client):
        fleet = client.app.state.fleet
        assert fleet.list_servers() == []
        assert {p.name for p in fleet.list_profiles()} >= {"Mini-Test-Node"}
