"""
Tests for the /boms endpoints.

Covers identity, the error envelope, the cost fields as serialized
strings and the optimistic-concurrency round trip.
"""
import pytest
from decimal import Decimal

from tests.factories import add_test_component, create_test_bom

BOMS_URL = "/api/v1/boms/"


def slide_kit_json(item_id, **overrides):
    data = {
        "name": "Drawer-Slide Kit",
        "overhead_cost": "3.00",
        "components": [
            {"kind": "item", "item_id": item_id, "quantity": "2", "waste_factor": "0.10"},
        ],
        "operations": [
            {"operation_name": "Pre-drill", "estimated_time_minutes": "30", "labor_rate": "24"},
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def created_kit(client, user_headers, drawer_slide):
    response = client.post(BOMS_URL, json=slide_kit_json(drawer_slide.id), headers=user_headers)
    assert response.status_code == 201
    return response.json()


class TestServiceRoutes:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "ok"}

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "online"
        assert response.json()["api"] == "/api/v1"

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestIdentity:

    def test_missing_user_header(self, client):
        response = client.get(BOMS_URL)

        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_ERROR"

    def test_unknown_user(self, client, db_session):
        response = client.get(BOMS_URL, headers={"X-User-Id": "9999"})
        assert response.status_code == 401

    def test_inactive_user(self, client, db_session):
        from tests.factories import create_test_user
        user = create_test_user(db_session, is_active=False)

        response = client.get(BOMS_URL, headers={"X-User-Id": str(user.id)})

        assert response.status_code == 403
        assert response.json()["error"] == "PERMISSION_DENIED"


class TestCreateAndRead:

    def test_create_returns_live_cost(self, created_kit, regular_user):
        assert created_kit["status"] == "draft"
        assert created_kit["created_by"] == regular_user.id
        assert created_kit["row_version"] == 1
        assert created_kit["allowed_transitions"] == ["active", "archived"]

        cost = created_kit["cost"]
        assert cost["material_cost"] == "11.00"
        assert cost["labor_cost"] == "12.00"
        assert cost["overhead_cost"] == "3.00"
        assert cost["total_cost"] == "26.00"
        assert created_kit["snapshot_total_cost"] == "26.00"

        component = created_kit["components"][0]
        assert component["kind"] == "item"
        assert component["item_sku"] == "HW-SLIDE-18"
        assert component["unit_abbreviation"] == "EA"

    def test_get(self, client, user_headers, created_kit):
        response = client.get(f"{BOMS_URL}{created_kit['id']}", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["name"] == "Drawer-Slide Kit"
        assert response.json()["cost"]["total_cost"] == "26.00"

    def test_get_missing_uses_error_envelope(self, client, user_headers):
        response = client.get(f"{BOMS_URL}9999", headers=user_headers)

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "NOT_FOUND"
        assert body["details"]["resource"] == "BOM"
        assert "timestamp" in body

    def test_waste_factor_of_one_rejected(self, client, user_headers, drawer_slide):
        payload = slide_kit_json(drawer_slide.id)
        payload["components"][0]["waste_factor"] = "1"

        response = client.post(BOMS_URL, json=payload, headers=user_headers)

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("section,field,value", [
        ("components", "waste_factor", "0.99999"),
        ("components", "quantity", "0.00001"),
        ("operations", "estimated_time_minutes", "0.001"),
        ("operations", "labor_rate", "24.125"),
    ])
    def test_values_finer_than_storage_rejected(
        self, client, user_headers, drawer_slide, section, field, value
    ):
        payload = slide_kit_json(drawer_slide.id)
        payload[section][0][field] = value

        response = client.post(BOMS_URL, json=payload, headers=user_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert any(
            error["field"].startswith(section) and error["field"].endswith(field)
            for error in body["details"]["errors"]
        )
        listing = client.get(BOMS_URL, headers=user_headers).json()
        assert listing["items"] == []

    def test_overhead_finer_than_storage_rejected(self, client, user_headers, drawer_slide):
        payload = slide_kit_json(drawer_slide.id, overhead_cost="3.00001")

        response = client.post(BOMS_URL, json=payload, headers=user_headers)

        assert response.status_code == 422
        assert response.json()["details"]["errors"][0]["field"] == "overhead_cost"

    def test_unknown_kind_rejected(self, client, user_headers, drawer_slide):
        payload = slide_kit_json(drawer_slide.id)
        payload["components"][0]["kind"] = "service"

        response = client.post(BOMS_URL, json=payload, headers=user_headers)

        assert response.status_code == 422

    def test_unknown_item_is_a_validation_error(self, client, user_headers, drawer_slide):
        payload = slide_kit_json(drawer_slide.id)
        payload["components"][0]["item_id"] = 9999

        response = client.post(BOMS_URL, json=payload, headers=user_headers)

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "components[0].item_id"

    def test_duplicate_name(self, client, user_headers, created_kit, drawer_slide):
        response = client.post(BOMS_URL, json=slide_kit_json(drawer_slide.id), headers=user_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_ERROR"


class TestUpdate:

    def test_update_and_stale_retry(self, client, user_headers, created_kit, drawer_slide):
        url = f"{BOMS_URL}{created_kit['id']}"
        payload = slide_kit_json(drawer_slide.id, description="Soft-close", row_version=1)

        first = client.put(url, json=payload, headers=user_headers)
        assert first.status_code == 200
        assert first.json()["row_version"] == 2
        assert first.json()["description"] == "Soft-close"

        stale = client.put(url, json=payload, headers=user_headers)
        assert stale.status_code == 409
        assert stale.json()["error"] == "CONCURRENCY_ERROR"
        assert stale.json()["details"]["current_version"] == 2

    def test_cycle_rejected(self, client, db_session, admin_headers, admin_user):
        c = create_test_bom(db_session, admin_user, name="C")
        b = create_test_bom(db_session, admin_user, name="B", components=[{"bom": c}])
        a = create_test_bom(db_session, admin_user, name="A", components=[{"bom": b}])

        response = client.put(f"{BOMS_URL}{c.id}", json={
            "name": "C",
            "row_version": 1,
            "components": [{"kind": "bom", "component_bom_id": a.id, "quantity": "1"}],
        }, headers=admin_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "CIRCULAR_REFERENCE"
        assert body["details"]["path"] == [c.id, a.id, b.id, c.id]

    def test_other_user_forbidden(self, client, other_headers, created_kit, drawer_slide):
        response = client.put(
            f"{BOMS_URL}{created_kit['id']}",
            json=slide_kit_json(drawer_slide.id, row_version=1),
            headers=other_headers,
        )

        assert response.status_code == 403


class TestDelete:

    def test_delete(self, client, user_headers, created_kit):
        url = f"{BOMS_URL}{created_kit['id']}"

        response = client.delete(url, params={"row_version": 1}, headers=user_headers)
        assert response.status_code == 204

        assert client.get(url, headers=user_headers).status_code == 404

    def test_delete_referenced_sub_assembly(self, client, db_session, admin_headers, admin_user):
        sub = create_test_bom(db_session, admin_user, name="Hinge Pack")
        parent = create_test_bom(db_session, admin_user, name="Door", components=[{"bom": sub}])

        response = client.delete(f"{BOMS_URL}{sub.id}", headers=admin_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "REFERENTIAL_INTEGRITY_ERROR"
        assert body["details"]["referenced_by"] == [parent.id]


class TestStatus:

    def test_activate_then_deactivate(self, client, user_headers, manager_headers, created_kit):
        url = f"{BOMS_URL}{created_kit['id']}/status"

        activated = client.post(url, json={"status": "active", "row_version": 1}, headers=user_headers)
        assert activated.status_code == 200
        assert activated.json()["status"] == "active"
        assert activated.json()["allowed_transitions"] == ["archived", "inactive"]

        # Creators may not take a released BOM out of service
        denied = client.post(url, json={"status": "inactive", "row_version": 2}, headers=user_headers)
        assert denied.status_code == 403

        deactivated = client.post(url, json={"status": "inactive", "row_version": 2}, headers=manager_headers)
        assert deactivated.status_code == 200
        assert deactivated.json()["status"] == "inactive"

    def test_invalid_transition(self, client, admin_headers, created_kit):
        response = client.post(
            f"{BOMS_URL}{created_kit['id']}/status",
            json={"status": "inactive", "row_version": 1},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_STATE"
        assert response.json()["details"]["allowed_states"] == ["active", "archived"]

    def test_unknown_status(self, client, admin_headers, created_kit):
        response = client.post(
            f"{BOMS_URL}{created_kit['id']}/status",
            json={"status": "obsolete", "row_version": 1},
            headers=admin_headers,
        )

        assert response.status_code == 422


class TestList:

    def test_pagination_and_filters(self, client, db_session, admin_headers, admin_user):
        for i in range(3):
            create_test_bom(db_session, admin_user, name=f"Wall Cabinet {i}")
        create_test_bom(db_session, admin_user, name="Drawer Box", status="active")

        response = client.get(BOMS_URL, params={"limit": 2}, headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"total": 4, "offset": 0, "limit": 2, "returned": 2}

        response = client.get(BOMS_URL, params={"status": "active"}, headers=admin_headers)
        assert [b["name"] for b in response.json()["items"]] == ["Drawer Box"]

        response = client.get(BOMS_URL, params={"search": "wall"}, headers=admin_headers)
        assert response.json()["pagination"]["total"] == 3

    def test_list_item_counts(self, client, user_headers, created_kit):
        response = client.get(BOMS_URL, headers=user_headers)

        item = response.json()["items"][0]
        assert item["component_count"] == 1
        assert item["operation_count"] == 1
        assert item["total_cost"] == "26.00"


class TestCopy:

    def test_copy(self, client, other_headers, other_user, created_kit):
        response = client.post(
            f"{BOMS_URL}{created_kit['id']}/copy",
            json={"name": "Drawer-Slide Kit (Soft Close)", "version": "2.0"},
            headers=other_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["id"] != created_kit["id"]
        assert body["status"] == "draft"
        assert body["version"] == "2.0"
        assert body["created_by"] == other_user.id
        assert body["cost"]["total_cost"] == "26.00"


class TestCost:

    @pytest.fixture
    def cabinet(self, db_session, admin_user, drawer_slide, plywood_panel):
        kit = create_test_bom(
            db_session, admin_user, name="Drawer-Slide Kit", overhead_cost="3.00",
            components=[{"item": drawer_slide, "quantity": 2, "waste_factor": "0.10"}],
            operations=[{"minutes": 30, "rate": 24}],
        )
        return create_test_bom(
            db_session, admin_user, name="Base Cabinet", overhead_cost="5.00",
            components=[{"bom": kit}, {"item": plywood_panel}],
            operations=[{"minutes": 60, "rate": 30}],
        )

    def test_live_cost(self, client, admin_headers, cabinet):
        response = client.get(f"{BOMS_URL}{cabinet.id}/cost", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["material_cost"] == "46.00"
        assert body["total_cost"] == "81.00"
        assert [line["line_cost"] for line in body["per_component"]] == ["26.00", "20.00"]

    def test_cost_follows_price_change(self, client, db_session, admin_headers, cabinet, drawer_slide):
        drawer_slide.unit_price = Decimal("6.00")
        db_session.commit()

        response = client.get(f"{BOMS_URL}{cabinet.id}/cost", headers=admin_headers)

        assert response.json()["material_cost"] == "48.20"

    def test_recalculate(self, client, admin_headers, cabinet):
        response = client.post(f"{BOMS_URL}{cabinet.id}/recalculate", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["previous_total_cost"] is None
        assert body["new_total_cost"] == "81.00"

        detail = client.get(f"{BOMS_URL}{cabinet.id}", headers=admin_headers).json()
        assert detail["snapshot_total_cost"] == "81.00"
        assert detail["row_version"] == 1

    def test_stored_cycle_reported_on_cost(self, client, db_session, admin_headers, admin_user):
        b = create_test_bom(db_session, admin_user, name="B")
        c = create_test_bom(db_session, admin_user, name="C", components=[{"bom": b}])
        add_test_component(db_session, b, sub_bom=c)

        response = client.get(f"{BOMS_URL}{c.id}/cost", headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["error"] == "CIRCULAR_REFERENCE"

    def test_explode(self, client, admin_headers, cabinet):
        response = client.get(
            f"{BOMS_URL}{cabinet.id}/explode",
            params={"quantity": 2, "flatten": True},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["leaf_item_count"] == 2
        assert body["leaf_material_cost"] == "62.00"
        assert {line["label"] for line in body["lines"]} == {
            "HW-SLIDE-18 - 18in Drawer Slide",
            "PLY-SIDE-34 - 3/4 Plywood Side Panel",
        }


class TestStructureQueries:

    def test_where_used(self, client, db_session, admin_headers, admin_user):
        sub = create_test_bom(db_session, admin_user, name="Hinge Pack")
        door = create_test_bom(db_session, admin_user, name="Door", components=[{"bom": sub, "quantity": 2}])

        response = client.get(f"{BOMS_URL}{sub.id}/where-used", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["used_in_count"] == 1
        assert body["used_in"][0]["bom_id"] == door.id
        assert body["used_in"][0]["name"] == "Door"

    def test_where_used_missing_bom(self, client, admin_headers):
        response = client.get(f"{BOMS_URL}9999/where-used", headers=admin_headers)
        assert response.status_code == 404

    def test_validate(self, client, db_session, admin_headers, admin_user):
        b = create_test_bom(db_session, admin_user, name="B")
        c = create_test_bom(db_session, admin_user, name="C", components=[{"bom": b}])
        add_test_component(db_session, b, sub_bom=c)

        response = client.post(f"{BOMS_URL}{c.id}/validate", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["is_valid"] is False
        codes = [issue["code"] for issue in body["issues"]]
        assert "circular_reference" in codes

    def test_audit_trail(self, client, user_headers, created_kit, drawer_slide):
        url = f"{BOMS_URL}{created_kit['id']}"
        client.put(url, json=slide_kit_json(drawer_slide.id, row_version=1), headers=user_headers)

        response = client.get(f"{url}/audit", headers=user_headers)

        assert response.status_code == 200
        assert [entry["action"] for entry in response.json()] == ["UPDATE", "INSERT"]
