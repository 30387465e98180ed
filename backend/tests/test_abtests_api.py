"""Tests for the A/B test endpoints."""
import time

import pytest

from tracklab.config import get_settings
from tracklab.main import app
from tracklab.models import ABTest, ImpressionLog

from conftest import ADMIN_HEADERS, API_KEY, signed

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.5 Mobile/15E148 Safari/604.1"
)
ORIGIN = {"origin": "https://shop.example.com"}


def execute_body(project, **extra):
    body = {
        "projectId": str(project.id),
        "url": "https://shop.example.com/products/1",
        "userAgent": IPHONE_UA,
        "language": "en",
        "visitCount": 1,
        "referrer": "",
    }
    body.update(extra)
    return signed(body)


def impression_body(project, abtest, **extra):
    body = {
        "projectId": str(project.id),
        "apiKey": API_KEY,
        "abtestId": str(abtest.id),
        "userId": "user_abc_1",
        "creativeIndex": 1,
        "creativeName": "B",
        "isOriginal": False,
        "url": "https://shop.example.com/products/1",
        "userAgent": IPHONE_UA,
        "language": "en",
    }
    body.update(extra)
    return signed(body)


def abtest_body(project, **extra):
    body = {
        "projectId": str(project.id),
        "name": "Headline",
        "cvCode": "purchase",
        "creatives": [
            {"name": "original", "distribution": 1, "isOriginal": True},
            {"name": "red", "distribution": 1, "css": "h1{color:red}"},
        ],
    }
    body.update(extra)
    return body


# Execute

def test_execute_matched(client, project, make_abtest):
    abtest = make_abtest()

    response = client.post("/api/abtests/execute", json=execute_body(project), headers=ORIGIN)

    assert response.status_code == 200
    data = response.json()
    assert data["matched"] is True
    assert data["abtestId"] == str(abtest.id)
    assert data["sessionDuration"] == 720
    assert data["creative"]["index"] in (0, 1)


def test_execute_without_tests_is_unmatched(client, project):
    response = client.post("/api/abtests/execute", json=execute_body(project), headers=ORIGIN)

    assert response.status_code == 200
    assert response.json() == {"matched": False}


def test_execute_missing_signature(client, project):
    body = execute_body(project)
    del body["_sig"]

    response = client.post("/api/abtests/execute", json=body)

    assert response.status_code == 401
    assert response.json()["code"] == "SIGNATURE_MISSING"


def test_execute_empty_body_is_missing_signature(client):
    response = client.post("/api/abtests/execute", content=b"")

    assert response.status_code == 401
    assert response.json()["code"] == "SIGNATURE_MISSING"


def test_execute_expired_signature(client, project):
    stale = int(time.time() * 1000) - 400_000
    body = signed({"projectId": str(project.id), "url": "https://shop.example.com/"}, timestamp=stale)

    response = client.post("/api/abtests/execute", json=body)

    assert response.status_code == 401
    assert response.json()["code"] == "SIGNATURE_EXPIRED"


def test_execute_signed_with_wrong_key(client, project):
    body = signed({"projectId": str(project.id), "url": "https://shop.example.com/"}, api_key="b" * 64)

    response = client.post("/api/abtests/execute", json=body)

    assert response.status_code == 401
    assert response.json()["code"] == "SIGNATURE_INVALID"


def test_execute_unknown_project(client):
    body = signed({"projectId": "00000000-0000-0000-0000-000000000000", "url": "https://x.com/"})

    response = client.post("/api/abtests/execute", json=body)

    assert response.status_code == 401
    assert response.json()["code"] == "SIGNATURE_INVALID"


def test_execute_tampered_url(client, project):
    body = execute_body(project)
    body["url"] = "https://shop.example.com/other"

    response = client.post("/api/abtests/execute", json=body)

    assert response.status_code == 401
    assert response.json()["code"] == "SIGNATURE_INVALID"


def test_execute_origin_not_in_project_list(client, db, project):
    project.allowed_origins = ["https://shop.example.com"]
    db.commit()

    response = client.post(
        "/api/abtests/execute",
        json=execute_body(project),
        headers={"origin": "https://evil.example.org"}
    )

    assert response.status_code == 403
    assert response.json()["code"] == "ORIGIN_NOT_ALLOWED"


def test_execute_origin_matches_wildcard(client, db, project):
    project.allowed_origins = ["https://*.example.com"]
    db.commit()

    response = client.post(
        "/api/abtests/execute",
        json=execute_body(project),
        headers={"origin": "https://blog.example.com"}
    )

    assert response.status_code == 200


def test_production_without_lists_rejects_origins(client, project, settings):
    app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={"environment": "production"})

    with_origin = client.post("/api/abtests/execute", json=execute_body(project), headers=ORIGIN)
    without_origin = client.post("/api/abtests/execute", json=execute_body(project))

    assert with_origin.status_code == 403
    assert without_origin.status_code == 200


def test_global_origins_apply_when_project_has_none(client, project, settings):
    app.dependency_overrides[get_settings] = lambda: settings.model_copy(
        update={"allowed_origins": "https://shop.example.com"}
    )

    allowed = client.post("/api/abtests/execute", json=execute_body(project), headers=ORIGIN)
    denied = client.post(
        "/api/abtests/execute",
        json=execute_body(project),
        headers={"origin": "https://other.example.com"}
    )

    assert allowed.status_code == 200
    assert denied.status_code == 403


def test_execute_rate_limited(client, project, mock_redis):
    mock_redis.get.return_value = "60"

    response = client.post("/api/abtests/execute", json=execute_body(project), headers=ORIGIN)

    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMITED"
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_execute_non_json_body(client):
    response = client.post("/api/abtests/execute", content=b"not json")

    assert response.status_code == 400


# Log impression

def test_log_impression_records_row(client, db, project, make_abtest):
    abtest = make_abtest()

    response = client.post("/api/abtests/log-impression", json=impression_body(project, abtest), headers=ORIGIN)

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    row = db.query(ImpressionLog).one()
    assert row.abtest_id == abtest.id
    assert row.creative_index == 1
    assert row.creative_name == "B"
    assert row.device == "SP"
    assert row.language == "en"


def test_log_impression_wrong_api_key_field(client, project, make_abtest):
    abtest = make_abtest()

    response = client.post(
        "/api/abtests/log-impression",
        json=impression_body(project, abtest, apiKey="c" * 64)
    )

    assert response.status_code == 403
    assert response.json()["code"] == "INVALID_CREDENTIALS"


def test_log_impression_unknown_test(client, project, make_abtest):
    abtest = make_abtest()
    body = impression_body(project, abtest, abtestId="00000000-0000-0000-0000-000000000000")

    response = client.post("/api/abtests/log-impression", json=body)

    assert response.status_code == 404


def test_log_impression_index_out_of_range(client, project, make_abtest):
    abtest = make_abtest()

    response = client.post(
        "/api/abtests/log-impression",
        json=impression_body(project, abtest, creativeIndex=5)
    )

    assert response.status_code == 404


def test_log_impression_missing_user(client, db, project, make_abtest):
    abtest = make_abtest()
    body = impression_body(project, abtest)
    del body["userId"]

    response = client.post("/api/abtests/log-impression", json=body)

    assert response.status_code == 400
    assert db.query(ImpressionLog).count() == 0


# Preview

def test_preview_creative(client, make_abtest):
    abtest = make_abtest()

    response = client.get(f"/api/abtests/{abtest.id}/creative/1")

    assert response.status_code == 200
    assert response.json()["creative"]["name"] == "B"


@pytest.mark.parametrize("path", [
    "/api/abtests/00000000-0000-0000-0000-000000000000/creative/0",
    "/api/abtests/not-a-uuid/creative/0",
])
def test_preview_unknown_test(client, path):
    response = client.get(path)

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_preview_index_out_of_range(client, make_abtest):
    abtest = make_abtest()

    assert client.get(f"/api/abtests/{abtest.id}/creative/9").status_code == 404


# Management

def test_admin_routes_require_key(client, project):
    assert client.get(f"/api/abtests?projectId={project.id}").status_code == 401
    assert client.get(
        f"/api/abtests?projectId={project.id}",
        headers={"x-api-key": "wrong"}
    ).json()["code"] == "ADMIN_KEY_INVALID"


def test_create_and_list(client, project):
    created = client.post("/api/abtests", json=abtest_body(project), headers=ADMIN_HEADERS)

    assert created.status_code == 200
    data = created.json()
    assert data["name"] == "Headline"
    assert data["active"] is False
    assert data["sessionDuration"] == 720
    assert data["creatives"][1]["css"] == "h1{color:red}"

    listed = client.get(f"/api/abtests?projectId={project.id}", headers=ADMIN_HEADERS)
    assert [a["id"] for a in listed.json()] == [data["id"]]


def test_list_requires_project_id(client):
    response = client.get("/api/abtests", headers=ADMIN_HEADERS)

    assert response.status_code == 400


def test_list_newest_first(client, project, make_abtest):
    older = make_abtest(name="older")
    newer = make_abtest(name="newer")

    listed = client.get(f"/api/abtests?projectId={project.id}", headers=ADMIN_HEADERS).json()

    assert [a["id"] for a in listed] == [str(newer.id), str(older.id)]


def test_create_requires_creatives(client, project):
    response = client.post("/api/abtests", json=abtest_body(project, creatives=[]), headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_create_rejects_bad_regex_condition(client, project):
    body = abtest_body(project, conditions={"browser": [{"value": "(", "condition": "regex"}]})

    response = client.post("/api/abtests", json=body, headers=ADMIN_HEADERS)

    assert response.status_code == 400


def test_create_for_unknown_project(client, project):
    body = abtest_body(project, projectId="00000000-0000-0000-0000-000000000000")

    response = client.post("/api/abtests", json=body, headers=ADMIN_HEADERS)

    assert response.status_code == 404


def test_update_toggle_delete(client, db, project, make_abtest):
    abtest = make_abtest(active=False)
    abtest_id = str(abtest.id)

    updated = client.put(
        f"/api/abtests/{abtest_id}",
        json=abtest_body(project, name="Renamed", targetUrl="/products/"),
        headers=ADMIN_HEADERS
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Renamed"
    assert updated.json()["targetUrl"] == "/products/"

    toggled = client.put(f"/api/abtests/{abtest_id}/toggle", headers=ADMIN_HEADERS)
    assert toggled.json()["active"] is True

    deleted = client.delete(f"/api/abtests/{abtest_id}", headers=ADMIN_HEADERS)
    assert deleted.json() == {"success": True}
    assert db.query(ABTest).count() == 0
    assert client.get(f"/api/abtests/{abtest_id}", headers=ADMIN_HEADERS).status_code == 404


def test_create_rejects_unusable_target_url(client, project):
    response = client.post(
        "/api/abtests",
        json=abtest_body(project, targetUrl="/products/item"),
        headers=ADMIN_HEADERS
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
