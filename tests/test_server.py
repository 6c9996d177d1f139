"""Tests for server/httpd.py and server/machines.py - the deployment API."""

import http.client
import json
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from catalog import region_display_name
from models import DeploymentResult
from orchestrator import DeploymentOrchestrator
from server import Server
from server.machines import handle_deploy, handle_select, handle_status


@pytest.fixture
def running_server(settings, store):
    """Start a server on a free port; yields (server, request function)."""
    orchestrator = DeploymentOrchestrator(settings, store=store)
    server = Server(settings, bind="127.0.0.1", port=0, store=store, orchestrator=orchestrator)
    server.start()
    thread = threading.Thread(target=server.server.serve_forever, daemon=True)
    thread.start()

    def request(method, path, body=None, raw=None):
        conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=10)
        payload = raw if raw is not None else (json.dumps(body) if body is not None else None)
        headers = {"Content-Type": "application/json"} if payload is not None else {}
        conn.request(method, path, body=payload, headers=headers)
        resp = conn.getresponse()
        data = json.loads(resp.read().decode("utf-8"))
        conn.close()
        return resp.status, data

    yield server, request

    server.shutdown()
    thread.join(5)


class TestServer:
    """Tests for Server class."""

    def test_defaults_from_settings(self, settings):
        server = Server(settings)
        assert server.port == settings.port
        assert server.bind == settings.bind
        assert server.server is None

    def test_start_creates_deployments_dir(self, settings):
        server = Server(settings, bind="127.0.0.1", port=0)
        server.start()
        try:
            assert settings.deployments_dir.is_dir()
            assert server.port != 0
            assert server.store.path == settings.machines_file
        finally:
            server.server.server_close()

    def test_serve_forever_requires_start(self, settings):
        with pytest.raises(RuntimeError):
            Server(settings).serve_forever()


class TestMachineEndpoints:
    """Tests for machine CRUD over HTTP."""

    def test_health(self, running_server):
        _, request = running_server
        assert request("GET", "/health") == (200, {"status": "ok"})

    def test_crud_cycle(self, running_server, sample_record):
        _, request = running_server

        status, data = request("POST", "/machines", sample_record)
        assert status == 201
        assert data["data"]["deploymentStatus"] == "pending"

        status, data = request("GET", "/machines")
        assert status == 200
        assert [m["id"] for m in data["data"]] == ["vm-1"]

        status, data = request("PATCH", "/machines/vm-1", {"name": "Renamed"})
        assert status == 200
        assert data["data"]["name"] == "Renamed"

        status, data = request("GET", "/machines/vm-1")
        assert data["data"]["name"] == "Renamed"

        status, data = request("DELETE", "/machines/vm-1")
        assert status == 200
        assert data == {"success": True}

        status, data = request("GET", "/machines/vm-1")
        assert status == 404
        assert data["error"]["code"] == "E404"

    def test_create_missing_fields(self, running_server):
        _, request = running_server
        status, data = request("POST", "/machines", {"id": "vm-2"})
        assert status == 400
        assert data["error"]["code"] == "E100"

    def test_create_duplicate(self, running_server, sample_record):
        _, request = running_server
        request("POST", "/machines", sample_record)
        status, data = request("POST", "/machines", sample_record)
        assert status == 409

    def test_malformed_json(self, running_server):
        _, request = running_server
        status, data = request("POST", "/machines", raw="{not json")
        assert status == 400
        assert "Invalid JSON" in data["error"]["message"]

    def test_invalid_content_length(self, running_server):
        server, _ = running_server
        for value in ("abc", "-5"):
            conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=10)
            conn.putrequest("POST", "/machines")
            conn.putheader("Content-Type", "application/json")
            conn.putheader("Content-Length", value)
            conn.endheaders()
            resp = conn.getresponse()
            data = json.loads(resp.read().decode("utf-8"))
            conn.close()
            assert resp.status == 400, value
            assert data["error"]["message"] == "Invalid Content-Length"

    def test_patch_rejects_status_jump(self, running_server, sample_record):
        _, request = running_server
        request("POST", "/machines", sample_record)
        status, data = request("PATCH", "/machines/vm-1", {"isDeployed": True})
        assert status == 400
        assert data["error"]["code"] == "E100"

        status, _ = request("PATCH", "/machines/vm-1", {"deploymentStatus": "deployed"})
        assert status == 400

    def test_patch_unknown_machine(self, running_server):
        _, request = running_server
        status, _ = request("PATCH", "/machines/ghost", {"name": "x"})
        assert status == 404

    def test_delete_unknown_machine(self, running_server):
        _, request = running_server
        status, _ = request("DELETE", "/machines/ghost")
        assert status == 404

    def test_unknown_endpoint(self, running_server):
        _, request = running_server
        status, _ = request("GET", "/nope")
        assert status == 404

    def test_catalog(self, running_server):
        _, request = running_server
        status, data = request("GET", "/catalog")
        assert status == 200
        assert {"code": "us-west-1", "name": region_display_name("us-west-1")} in data["data"]["regions"]
        assert data["data"]["machines"][0]["id"] == "vscode-large-eu-west"

    def test_status_falls_back_to_store(self, running_server, sample_record):
        _, request = running_server
        request("POST", "/machines", sample_record)
        status, data = request("GET", "/machines/vm-1/status")
        assert status == 200
        assert data["data"] == {"machineId": "vm-1", "status": "pending", "attempts": 0}

    def test_select_requires_prompt(self, running_server):
        _, request = running_server
        status, data = request("POST", "/select", {})
        assert status == 400


class TestDeployEndpoint:
    """Tests for POST /deploy."""

    def test_invalid_config(self, running_server):
        _, request = running_server
        status, data = request("POST", "/deploy", {"vmConfig": {"id": "vm-9"}})
        assert status == 400
        assert data["success"] is False
        assert data["vmId"] == "vm-9"
        assert data["errorCode"] == "E100"

    def test_success_flat_response(self, running_server, sample_record):
        server, request = running_server
        ok = DeploymentResult.succeeded("203.0.113.5", "vm-key-vm-1", "/d/w", "ssh -i /d/w/vm-key-vm-1 ubuntu@203.0.113.5")
        with patch.object(server.orchestrator, "deploy", return_value=ok):
            status, data = request("POST", "/deploy", {"vmConfig": sample_record})

        assert status == 200
        assert data == {
            "success": True,
            "vmId": "vm-1",
            "publicIp": "203.0.113.5",
            "sshKeyName": "vm-key-vm-1",
            "deploymentDir": "/d/w",
            "sshCommand": "ssh -i /d/w/vm-key-vm-1 ubuntu@203.0.113.5",
        }

    def test_bare_record_accepted(self, running_server, sample_record):
        server, request = running_server
        failed = DeploymentResult.failed("E300", "Provisioning failed during apply")
        with patch.object(server.orchestrator, "deploy", return_value=failed):
            status, data = request("POST", "/deploy", sample_record)

        assert status == 500
        assert data["errorCode"] == "E300"
        assert data["vmId"] == "vm-1"


class TestHandlers:
    """Direct handler tests."""

    def test_deploy_conflict_status(self, sample_record):
        orchestrator = MagicMock()
        orchestrator.deploy.return_value = DeploymentResult.failed("E409", "Deployment already in progress")
        data, status = handle_deploy(orchestrator, {"vmConfig": sample_record})
        assert status == 409

        orchestrator.deploy.return_value = DeploymentResult.failed("E410", "Cannot move")
        _, status = handle_deploy(orchestrator, sample_record)
        assert status == 409

    def test_deploy_non_object_body(self):
        data, status = handle_deploy(MagicMock(), ["vm-1"])
        assert status == 400
        assert data["vmId"] == ""

    def test_status_unknown(self, store):
        orchestrator = MagicMock()
        orchestrator.status.return_value = None
        _, status = handle_status(orchestrator, store, "ghost")
        assert status == 404

    def test_select_returns_machine(self, settings):
        data, status = handle_select(settings, {"prompt": "vscode in europe"})
        assert status == 200
        assert data["data"]["id"] == "vscode-large-eu-west"
