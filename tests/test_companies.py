"""Company / tenant context tests — header resolution and super-admin management."""

from __future__ import annotations

import uuid

from attendease.common.constants import UserRole
from tests.conftest import auth_headers_for, make_company, make_profile


async def test_employee_lists_only_own_company(client, db, company, employee):
    await make_company(db, name="Globex", domain="globex.io")
    headers = await auth_headers_for(db, employee)

    resp = await client.get("/api/v1/companies", headers=headers)

    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()] == [str(company.id)]


async def test_super_admin_lists_all_companies(client, db, company, super_admin):
    await make_company(db, name="Globex", domain="globex.io")
    headers = await auth_headers_for(db, super_admin)

    resp = await client.get("/api/v1/companies", headers=headers)

    assert sorted(c["name"] for c in resp.json()) == ["Acme", "Globex"]


async def test_admin_cannot_select_another_company(client, db, admin):
    other = await make_company(db, name="Globex", domain="globex.io")
    headers = await auth_headers_for(db, admin, company_id=other.id)

    resp = await client.get("/api/v1/employees", headers=headers)
    assert resp.status_code == 403


async def test_invalid_company_header(client, db, admin):
    headers = await auth_headers_for(db, admin)
    headers["X-Company-Id"] = "not-a-uuid"

    resp = await client.get("/api/v1/companies/current", headers=headers)
    assert resp.status_code == 422


async def test_super_admin_selects_company_with_header(client, db, super_admin):
    other = await make_company(db, name="Globex", domain="globex.io")
    headers = await auth_headers_for(db, super_admin, company_id=other.id)

    resp = await client.get("/api/v1/companies/current", headers=headers)

    assert resp.status_code == 200
    assert resp.json()["name"] == "Globex"


async def test_super_admin_unknown_company_header(client, db, super_admin):
    headers = await auth_headers_for(db, super_admin, company_id=uuid.uuid4())
    resp = await client.get("/api/v1/companies/current", headers=headers)
    assert resp.status_code == 404


async def test_super_admin_scoped_listing_follows_header(client, db, company, super_admin):
    other = await make_company(db, name="Globex", domain="globex.io")
    await make_profile(db, other, name="Gus Globex")
    headers = await auth_headers_for(db, super_admin, company_id=other.id)

    resp = await client.get("/api/v1/employees", headers=headers)

    assert [e["name"] for e in resp.json()["data"]] == ["Gus Globex"]


async def test_create_company_super_admin_only(client, db, admin, super_admin):
    body = {"name": "Initech", "domain": "@Initech.COM"}

    denied = await client.post("/api/v1/companies", json=body, headers=await auth_headers_for(db, admin))
    assert denied.status_code == 403

    created = await client.post("/api/v1/companies", json=body, headers=await auth_headers_for(db, super_admin))
    assert created.status_code == 201
    assert created.json()["domain"] == "initech.com"


async def test_create_company_duplicate_domain(client, db, super_admin):
    resp = await client.post(
        "/api/v1/companies",
        json={"name": "Acme Again", "domain": "acme.io"},
        headers=await auth_headers_for(db, super_admin),
    )
    assert resp.status_code == 409


async def test_admin_updates_only_own_company(client, db, company, admin):
    other = await make_company(db, name="Globex", domain="globex.io")
    headers = await auth_headers_for(db, admin)

    own = await client.patch(f"/api/v1/companies/{company.id}", json={"name": "Acme Corp"}, headers=headers)
    assert own.status_code == 200
    assert own.json()["name"] == "Acme Corp"

    foreign = await client.patch(f"/api/v1/companies/{other.id}", json={"name": "Mine"}, headers=headers)
    assert foreign.status_code == 403


async def test_manager_cannot_update_company(client, db, company):
    manager = await make_profile(db, company, role=UserRole.reporting_manager)
    resp = await client.patch(
        f"/api/v1/companies/{company.id}",
        json={"name": "Nope"},
        headers=await auth_headers_for(db, manager),
    )
    assert resp.status_code == 403
