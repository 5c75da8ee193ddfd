"""
HTTP API tests against the bundled sample catalog (data/courses.json).

Requirement and selection state is swapped for fresh instances per test
so nothing is written under data/.
"""

import pytest

import server
from requirement_store import RequirementStore
from selection_store import SelectionStore


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setattr(server, "_requirements", RequirementStore())
    monkeypatch.setattr(server, "_selection", SelectionStore(str(tmp_path / "selected.json")))
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["courses"] == 20
        assert data["requirements_source"] == "default"

    def test_api_health_alias(self, client):
        assert client.get("/api/health").status_code == 200

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.headers.get("X-Frame-Options") == "DENY"
        assert resp.headers.get("X-Content-Type-Options") == "nosniff"
        assert resp.headers.get("Referrer-Policy") == "same-origin"

    def test_unknown_api_route(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.headers.get("X-Frame-Options") == "DENY"


class TestCourses:
    def test_all_courses(self, client):
        data = client.get("/api/courses").get_json()
        assert len(data["courses"]) == 20
        assert {"value": "CAR", "label": "Career Connection"} in data["prefixes"]
        labels = [p["label"] for p in data["prefixes"]]
        assert labels == sorted(labels)
        assert all("prefixLabel" in c for c in data["courses"])
        assert data["quarters"] == ["Q1", "Q2", "Q3", "Q4"]

    def test_filter_by_prefix(self, client):
        data = client.get("/api/courses?prefix=car").get_json()
        assert {c["code"] for c in data["courses"]} == {
            "CAR-3-D1-1000-001", "CAR-3-D1-0100-002", "CAR-3-D1-0010-003",
        }

    def test_filter_by_query_and_quarter(self, client):
        data = client.get("/api/courses?q=internship&quarter=Q2").get_json()
        assert [c["code"] for c in data["courses"]] == ["CAR-3-D1-0100-002"]

    def test_credit_text_is_normalized(self, client):
        data = client.get("/api/courses?q=self-directed").get_json()
        assert data["courses"][0]["credits"] == 2.0


class TestEvaluate:
    def test_evaluate_with_active_requirements(self, client):
        resp = client.post("/api/evaluate", json={
            "selected_codes": ["INT-1-A1-1030-001", "int-1-a1-0204-002", "bad code", "ZZZ-9-Z9-0000-999"],
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["mode"] == "evaluation"
        assert data["selected_codes"] == ["INT-1-A1-1030-001", "INT-1-A1-0204-002"]
        assert data["invalid"] == ["bad code"]
        assert data["not_in_catalog"] == ["ZZZ-9-Z9-0000-999"]
        report = data["report"]
        assert report["categories"]["introductory"]["achieved"] == 4
        assert report["total"]["achieved"] == 4
        assert report["overallMet"] is False

    def test_evaluate_text_input(self, client):
        resp = client.post("/api/evaluate", json={
            "selected_codes": "CAR-3-D1-1000-001\nCAR-3-D1-0100-002;CAR-3-D1-0010-003,OPT-0-Z0-0000-001",
        })
        dev = resp.get_json()["report"]["categories"]["development"]
        assert dev["subChecks"]["devCareerConnection"]["achievedCounted"] == 10
        assert dev["achieved"] == 10

    def test_evaluate_with_supplied_requirements(self, client):
        resp = client.post("/api/evaluate", json={
            "selected_codes": ["INT-1-A1-1030-001"],
            "requirements": {
                "totalCreditsRequired": 2,
                "categories": [{"id": "intro", "creditsRequired": 2, "identification": {"startsWith": ["INT-"]}}],
            },
        })
        report = resp.get_json()["report"]
        assert report["overallMet"] is True

    def test_evaluate_with_broken_requirements_degrades(self, client):
        resp = client.post("/api/evaluate", json={"selected_codes": ["INT-1-A1-1030-001"], "requirements": {}})
        assert resp.status_code == 200
        report = resp.get_json()["report"]
        assert report["categories"] == {}
        assert report["total"]["achieved"] == 0
        assert report["configError"]

    def test_evaluate_with_malformed_children_degrades(self, client):
        resp = client.post("/api/evaluate", json={
            "selected_codes": ["INT-1-A1-1030-001"],
            "requirements": {"categories": [{"id": "basic", "subCategories": 5}]},
        })
        assert resp.status_code == 200
        assert "must be a list" in resp.get_json()["report"]["configError"]

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]"])
    def test_evaluate_rejects_non_object(self, client, payload):
        resp = client.post("/api/evaluate", data=payload, content_type="application/json")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_unexpected_error_envelope(self, client, monkeypatch):
        def boom(*_args):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(server, "evaluate", boom)
        resp = client.post("/api/evaluate", json={"selected_codes": []})
        assert resp.status_code == 500
        data = resp.get_json()
        assert data["mode"] == "error"
        assert data["error"]["error_code"] == "SERVER_ERROR"
        assert "kaboom" not in data["error"]["message"]


class TestRequirements:
    NEW = {
        "totalCreditsRequired": 4,
        "categories": [{"id": "intro", "creditsRequired": 4, "identification": {"startsWith": ["INT-"]}}],
    }

    def test_get(self, client):
        data = client.get("/api/requirements").get_json()
        assert data["source"] == "default"
        assert data["requirements"]["totalCreditsRequired"] == 124

    def test_put_then_evaluate(self, client):
        resp = client.put("/api/requirements", json=self.NEW)
        assert resp.status_code == 200
        assert resp.get_json()["source"] == "imported"
        resp = client.post("/api/evaluate", json={"selected_codes": ["INT-1-A1-1030-001", "INT-1-A1-0204-002"]})
        assert resp.get_json()["report"]["overallMet"] is True

    def test_put_returns_warnings(self, client):
        resp = client.put("/api/requirements", json={"categories": [{"id": "lonely"}]})
        assert resp.status_code == 200
        assert resp.get_json()["warnings"]

    def test_put_invalid(self, client):
        resp = client.put("/api/requirements", json={"categories": "nope"})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_REQUIREMENTS"
        assert client.get("/api/requirements").get_json()["source"] == "default"

    @pytest.mark.parametrize("doc", [
        {"categories": [{"id": "basic", "subCategories": 5}]},
        {"categories": [{"id": "dev", "isGeneralDevelopmentCategory": True, "subChecks": 5}]},
        {"categories": [{"id": "dev", "isGeneralDevelopmentCategory": True, "subChecks": [{"id": "sc", "subSubChecks": 7}]}]},
    ])
    def test_put_malformed_children(self, client, doc):
        resp = client.put("/api/requirements", json=doc)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_REQUIREMENTS"
        assert "must be a list" in resp.get_json()["error"]["message"]

    def test_put_not_json(self, client):
        resp = client.put("/api/requirements", data="{", content_type="application/json")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_export(self, client):
        client.put("/api/requirements", json=self.NEW)
        resp = client.get("/api/requirements/export")
        assert resp.status_code == 200
        assert "attachment" in resp.headers.get("Content-Disposition", "")
        assert resp.get_json() == self.NEW

    def test_reset(self, client):
        client.put("/api/requirements", json=self.NEW)
        data = client.post("/api/requirements/reset").get_json()
        assert data["source"] == "default"
        assert data["requirements"]["totalCreditsRequired"] == 124


class TestSelection:
    def test_empty_by_default(self, client):
        assert client.get("/api/selection").get_json() == {"courses": [], "not_in_catalog": []}

    def test_put_then_get(self, client):
        resp = client.put("/api/selection", json={"selected_codes": ["CAR-3-D1-1000-001", "ZZZ-1"]})
        assert resp.status_code == 200
        assert resp.get_json()["not_in_catalog"] == ["ZZZ-1"]
        data = client.get("/api/selection").get_json()
        assert [c["code"] for c in data["courses"]] == ["CAR-3-D1-1000-001"]
        assert data["courses"][0]["credits"] == 4.0

    def test_put_save_failure(self, client, monkeypatch, tmp_path):
        monkeypatch.setattr(server, "_selection", SelectionStore(str(tmp_path / "no" / "sel.json")))
        resp = client.put("/api/selection", json={"selected_codes": ["CAR-3-D1-1000-001"]})
        assert resp.status_code == 500
        assert resp.get_json()["error"]["error_code"] == "SAVE_FAILED"

    def test_export_text(self, client):
        client.put("/api/selection", json={"selected_codes": "LAN-2-C2-1111-001\nINT-1-A1-1030-001"})
        resp = client.get("/api/selection/export")
        assert resp.mimetype == "text/plain"
        assert resp.get_data(as_text=True) == "LAN-2-C2-1111-001\nINT-1-A1-1030-001"

    def test_import_text(self, client):
        resp = client.post("/api/selection/import", json={"text": "LAN-2-C2-1111-001\nINT-1-A1-1030-001\n"})
        codes = [c["code"] for c in resp.get_json()["courses"]]
        assert codes == ["INT-1-A1-1030-001", "LAN-2-C2-1111-001"]


class TestNonObjectBodies:
    @pytest.mark.parametrize("method,path", [
        ("put", "/api/selection"),
        ("post", "/api/selection/import"),
        ("post", "/api/share"),
    ])
    def test_array_body_rejected(self, client, method, path):
        resp = getattr(client, method)(path, json=["INT-1-A1-1030-001"])
        assert resp.status_code == 400
        data = resp.get_json()
        assert data["mode"] == "error"
        assert data["error"]["error_code"] == "INVALID_INPUT"

    def test_array_selection_leaves_store_untouched(self, client):
        client.put("/api/selection", json=["INT-1-A1-1030-001"])
        assert client.get("/api/selection").get_json()["courses"] == []


class TestShare:
    def test_share_roundtrip(self, client):
        token = client.post("/api/share", json={
            "selected_codes": ["INT-1-A1-1030-001", "CAR-3-D1-1000-001"],
            "title": "Plan A",
        }).get_json()["token"]
        data = client.get(f"/api/share/{token}").get_json()
        assert data == {
            "codes": ["INT-1-A1-1030-001", "CAR-3-D1-1000-001"],
            "title": "Plan A",
            "comment": "",
            "courses": [
                {"code": "INT-1-A1-1030-001", "label": "Introductory"},
                {"code": "CAR-3-D1-1000-001", "label": "Career Connection"},
            ],
        }

    def test_malformed_token(self, client):
        data = client.get("/api/share/garbage").get_json()
        assert data["codes"] == []


class TestCatalogReload:
    def test_reload_swaps_catalog(self, client, monkeypatch):
        new_data = {"catalog_codes": {"NEW-1"}, "courses_by_code": {}, "courses_df": None, "courses": []}
        monkeypatch.setattr(server, "_data", server._data)
        monkeypatch.setattr(server, "load_data", lambda _path: new_data)
        resp = client.post("/api/catalog/reload")
        assert resp.status_code == 200
        assert resp.get_json()["courses"] == 1
        assert server._data is new_data

    def test_reload_failure_keeps_previous(self, client, monkeypatch):
        old_data = server._data
        monkeypatch.setattr(server, "_data", old_data)

        def boom(_path):
            raise ValueError("broken catalog")

        monkeypatch.setattr(server, "load_data", boom)
        resp = client.post("/api/catalog/reload")
        assert resp.status_code == 500
        assert resp.get_json()["error"]["error_code"] == "RELOAD_FAILED"
        assert server._data is old_data
