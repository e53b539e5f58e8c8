"""
Console CRUD tests: companies, customers, flows and steps.
"""

import pytest

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


# =============================================================================
# COMPANIES
# =============================================================================

class TestCompanies:

    def test_create_and_list_newest_first(self, auth_client, fake_db):
        fake_db.add("companies", user_id=OWNER_ID, name="Old Co", created_at="2023-01-01T00:00:00+00:00")
        fake_db.add("companies", user_id=OTHER_OWNER_ID, name="Not Mine", created_at="2025-01-01T00:00:00+00:00")

        response = auth_client.post("/api/companies", json={"name": "  New Co ", "domain": "", "logo_url": ""})
        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "New Co"
        assert created["domain"] is None
        assert created["user_id"] == OWNER_ID

        names = [c["name"] for c in auth_client.get("/api/companies").json()]
        assert names == ["New Co", "Old Co"]

    def test_name_is_required(self, auth_client, fake_db):
        response = auth_client.post("/api/companies", json={"name": "   "})
        assert response.status_code == 422
        assert "Company name is required" in response.text
        assert fake_db.rows("companies") == []

    def test_foreign_company_is_not_found(self, auth_client, fake_db):
        other = fake_db.add("companies", user_id=OTHER_OWNER_ID, name="Not Mine")
        assert auth_client.get(f"/api/companies/{other['id']}").status_code == 404
        assert auth_client.delete(f"/api/companies/{other['id']}").status_code == 404
        assert len(fake_db.rows("companies")) == 1

    def test_update(self, auth_client, seeded):
        company_id = seeded["company"]["id"]
        response = auth_client.patch(f"/api/companies/{company_id}", json={"domain": "acme.example"})
        assert response.status_code == 200
        assert response.json()["domain"] == "acme.example"
        assert response.json()["name"] == "Acme"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_update_rejects_missing_name(self, auth_client, seeded, name):
        company_id = seeded["company"]["id"]
        response = auth_client.patch(f"/api/companies/{company_id}", json={"name": name})
        assert response.status_code == 422
        assert "Company name is required" in response.text
        assert seeded["company"]["name"] == "Acme"

    def test_update_blank_optional_is_stored_as_null(self, auth_client, seeded):
        company_id = seeded["company"]["id"]
        response = auth_client.patch(f"/api/companies/{company_id}", json={"domain": "  "})
        assert response.status_code == 200
        assert response.json()["domain"] is None
        assert seeded["company"]["domain"] is None

    def test_delete_reports_dependents(self, auth_client, seeded):
        company_id = seeded["company"]["id"]
        response = auth_client.delete(f"/api/companies/{company_id}")
        assert response.status_code == 200
        assert response.json()["dependents"] == {"flows": 1, "customers": 2}
        assert seeded["db"].rows("companies") == []
        assert len(seeded["db"].rows("customers")) == 2


# =============================================================================
# CUSTOMERS
# =============================================================================

class TestCustomers:

    def test_list_includes_company_name(self, auth_client, seeded):
        seeded["db"].add("customers", user_id=OWNER_ID, company_id="deleted-co", email="lost@x.test",
                         created_at="2020-01-01T00:00:00+00:00")
        customers = auth_client.get("/api/customers").json()
        assert len(customers) == 3
        by_email = {c["email"]: c for c in customers}
        assert by_email["ana@acme.test"]["company_name"] == "Acme"
        assert by_email["lost@x.test"]["company_name"] == "Unknown"

    def test_filter_by_company(self, auth_client, seeded):
        response = auth_client.get("/api/customers", params={"company_id": "nope"})
        assert response.json() == []

    def test_create_requires_email_and_company(self, auth_client, seeded):
        response = auth_client.post("/api/customers", json={"company_id": seeded["company"]["id"], "email": ""})
        assert response.status_code == 422
        assert "Email and company are required" in response.text

    def test_create_rejects_invalid_email(self, auth_client, seeded):
        response = auth_client.post("/api/customers", json={"company_id": seeded["company"]["id"], "email": "nope"})
        assert response.status_code == 422

    def test_create_for_foreign_company(self, auth_client, fake_db):
        other = fake_db.add("companies", user_id=OTHER_OWNER_ID, name="Not Mine")
        response = auth_client.post("/api/customers", json={"company_id": other["id"], "email": "a@example.com"})
        assert response.status_code == 404

    def test_create(self, auth_client, seeded):
        response = auth_client.post("/api/customers", json={
            "company_id": seeded["company"]["id"],
            "email": "cleo@example.com",
            "name": "Cleo",
            "phone": "",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["company_name"] == "Acme"
        assert data["phone"] is None

    @pytest.mark.parametrize("payload", [{"email": None}, {"email": ""}, {"company_id": None}, {"company_id": ""}])
    def test_update_rejects_missing_email_or_company(self, auth_client, seeded, payload):
        customer = seeded["customers"][0]
        response = auth_client.patch(f"/api/customers/{customer['id']}", json=payload)
        assert response.status_code == 422
        assert "Email and company are required" in response.text
        assert customer["email"] == "ana@acme.test"
        assert customer["company_id"] == seeded["company"]["id"]

    def test_update_to_foreign_company(self, auth_client, seeded):
        other = seeded["db"].add("companies", user_id=OTHER_OWNER_ID, name="Not Mine")
        customer = seeded["customers"][0]
        response = auth_client.patch(f"/api/customers/{customer['id']}", json={"company_id": other["id"]})
        assert response.status_code == 404
        assert customer["company_id"] == seeded["company"]["id"]

    def test_update_blank_phone_is_stored_as_null(self, auth_client, seeded):
        customer = seeded["customers"][0]
        response = auth_client.patch(f"/api/customers/{customer['id']}", json={"phone": "", "name": "Ana B"})
        assert response.status_code == 200
        assert response.json()["phone"] is None
        assert response.json()["name"] == "Ana B"

    def test_delete_reports_progress(self, auth_client, seeded):
        customer = seeded["customers"][0]
        seeded["db"].add("customer_progress", user_id=OWNER_ID, customer_id=customer["id"],
                         flow_id=seeded["flow"]["id"], step_id=seeded["steps"][0]["id"], status="completed")
        response = auth_client.delete(f"/api/customers/{customer['id']}")
        assert response.json()["dependents"] == {"progress": 1}

    def test_portal_link(self, auth_client, seeded):
        customer = seeded["customers"][0]
        flow = seeded["flow"]
        response = auth_client.get(f"/api/customers/{customer['id']}/portal-link", params={"flow_id": flow["id"]})
        assert response.status_code == 200
        assert response.json()["url"].endswith(f"/portal?c={customer['id']}&f={flow['id']}")

    def test_portal_link_rejects_other_company_flow(self, auth_client, seeded):
        db = seeded["db"]
        other_company = db.add("companies", user_id=OWNER_ID, name="Other")
        other_flow = db.add("onboarding_flows", user_id=OWNER_ID, company_id=other_company["id"], name="X")
        customer = seeded["customers"][0]
        response = auth_client.get(f"/api/customers/{customer['id']}/portal-link", params={"flow_id": other_flow["id"]})
        assert response.status_code == 400


# =============================================================================
# FLOWS
# =============================================================================

class TestFlows:

    def test_list_with_company_and_step_count(self, auth_client, seeded):
        flows = auth_client.get("/api/flows").json()
        assert len(flows) == 1
        assert flows[0]["company_name"] == "Acme"
        assert flows[0]["step_count"] == 3

    def test_create_is_active(self, auth_client, seeded):
        response = auth_client.post("/api/flows", json={
            "company_id": seeded["company"]["id"],
            "name": "Advanced setup",
            "description": "",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["is_active"] is True
        assert data["description"] is None
        assert data["step_count"] == 0

    def test_create_requires_name_and_company(self, auth_client, seeded):
        response = auth_client.post("/api/flows", json={"company_id": "", "name": "X"})
        assert response.status_code == 422
        assert "Name and company are required" in response.text

    def test_toggle_active(self, auth_client, seeded):
        flow_id = seeded["flow"]["id"]
        first = auth_client.post(f"/api/flows/{flow_id}/toggle-active").json()
        assert first == {"id": flow_id, "is_active": False, "message": "Flow deactivated"}
        second = auth_client.post(f"/api/flows/{flow_id}/toggle-active").json()
        assert second["message"] == "Flow activated"

    @pytest.mark.parametrize("payload", [{"is_active": None}, {"name": None}, {"name": " "}])
    def test_update_rejects_nulls(self, auth_client, seeded, payload):
        flow = seeded["flow"]
        response = auth_client.patch(f"/api/flows/{flow['id']}", json=payload)
        assert response.status_code == 422
        assert flow["is_active"] is True
        assert flow["name"] == "Getting started"

    def test_update(self, auth_client, seeded):
        flow_id = seeded["flow"]["id"]
        response = auth_client.patch(f"/api/flows/{flow_id}", json={"is_active": False, "description": ""})
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert response.json()["description"] is None

    def test_get_flow_with_ordered_steps(self, auth_client, seeded):
        seeded["steps"][0]["step_order"] = 9
        data = auth_client.get(f"/api/flows/{seeded['flow']['id']}").json()
        assert [s["title"] for s in data["steps"]] == ["Connect data", "Invite team", "Create account"]

    def test_delete_reports_steps(self, auth_client, seeded):
        response = auth_client.delete(f"/api/flows/{seeded['flow']['id']}")
        assert response.json()["dependents"] == {"steps": 3}


# =============================================================================
# STEPS
# =============================================================================

class TestSteps:

    def _orders(self, db):
        return {s["title"]: s["step_order"] for s in db.rows("steps")}

    def test_create_appends(self, auth_client, seeded):
        response = auth_client.post(f"/api/flows/{seeded['flow']['id']}/steps", json={
            "title": "Go live",
            "estimated_time": "",
        })
        assert response.status_code == 201
        assert response.json()["step_order"] == 4
        assert response.json()["estimated_time"] is None

    def test_title_required(self, auth_client, seeded):
        response = auth_client.post(f"/api/flows/{seeded['flow']['id']}/steps", json={"title": ""})
        assert response.status_code == 422
        assert "Title is required" in response.text

    def test_update(self, auth_client, seeded):
        step = seeded["steps"][1]
        response = auth_client.patch(f"/api/steps/{step['id']}", json={
            "title": "Connect your data",
            "content": "Use the Integrations page",
        })
        assert response.status_code == 200
        assert response.json()["title"] == "Connect your data"
        assert response.json()["step_order"] == 2

    def test_move_up(self, auth_client, seeded):
        step = seeded["steps"][1]
        response = auth_client.post(f"/api/steps/{step['id']}/move", json={"direction": "up"})
        assert response.status_code == 200
        assert response.json()["moved"] is True
        assert self._orders(seeded["db"]) == {"Connect data": 1, "Create account": 2, "Invite team": 3}

    def test_move_first_up_is_noop(self, auth_client, seeded):
        step = seeded["steps"][0]
        response = auth_client.post(f"/api/steps/{step['id']}/move", json={"direction": "up"})
        assert response.json()["moved"] is False
        assert self._orders(seeded["db"]) == {"Create account": 1, "Connect data": 2, "Invite team": 3}

    def test_move_rejects_bad_direction(self, auth_client, seeded):
        step = seeded["steps"][0]
        response = auth_client.post(f"/api/steps/{step['id']}/move", json={"direction": "sideways"})
        assert response.status_code == 422

    def test_full_reorder(self, auth_client, seeded):
        ids = [s["id"] for s in reversed(seeded["steps"])]
        response = auth_client.put(f"/api/flows/{seeded['flow']['id']}/steps/order", json={"step_ids": ids})
        assert response.status_code == 200
        assert self._orders(seeded["db"]) == {"Invite team": 1, "Connect data": 2, "Create account": 3}

    def test_full_reorder_rejects_partial_list(self, auth_client, seeded):
        ids = [seeded["steps"][0]["id"]]
        response = auth_client.put(f"/api/flows/{seeded['flow']['id']}/steps/order", json={"step_ids": ids})
        assert response.status_code == 400

    def test_delete(self, auth_client, seeded):
        step = seeded["steps"][2]
        assert auth_client.delete(f"/api/steps/{step['id']}").status_code == 200
        assert len(seeded["db"].rows("steps")) == 2

    def test_delete_closes_order_gap(self, auth_client, seeded):
        step = seeded["steps"][0]
        assert auth_client.delete(f"/api/steps/{step['id']}").status_code == 200
        assert self._orders(seeded["db"]) == {"Connect data": 1, "Invite team": 2}

        response = auth_client.post(f"/api/flows/{seeded['flow']['id']}/steps", json={"title": "Go live"})
        assert response.json()["step_order"] == 3
        assert self._orders(seeded["db"]) == {"Connect data": 1, "Invite team": 2, "Go live": 3}
