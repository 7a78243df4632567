"""
HTTP tests for the partner and admin surfaces.

Requests go through the ASGI app with the database dependency pointed at
the per-test SQLite file.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.config import get_settings
from app.core.db import get_db
from app.core.security import create_access_token
from app.main import app
from app.models.deal import DealStage
from app.services.deal_pipeline import PIPELINE_ORDER


def auth(partner, is_admin=False):
    return {"Authorization": f"Bearer {create_access_token(partner.id, is_admin=is_admin)}"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin):
    return auth(admin, is_admin=True)


async def submit(client, partner, business_name="Corner Cafe Ltd"):
    response = await client.post(
        "/api/partner/deals", json={"business_name": business_name}, headers=auth(partner)
    )
    assert response.status_code == 201, response.text
    return response.json()


async def advance_to_approved(client, deal_id, headers):
    for stage in PIPELINE_ORDER[1:PIPELINE_ORDER.index(DealStage.APPROVED) + 1]:
        response = await client.post(
            f"/api/admin/deals/{deal_id}/advance", json={"target_stage": stage.value}, headers=headers
        )
        assert response.status_code == 200, response.text


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/partner/deals")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get("/api/partner/deals", headers={"Authorization": "Bearer nonsense"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_partner(self, client):
        token = create_access_token("ghost")
        response = await client.get("/api/partner/deals", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_partner(self, client, db, make_partner):
        partner = await make_partner()
        partner.is_active = False
        await db.commit()

        response = await client.get("/api/partner/deals", headers=auth(partner))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_cookie_token(self, client, make_partner):
        partner = await make_partner()
        client.cookies.set(get_settings().auth_cookie_name, create_access_token(partner.id))

        response = await client.get("/api/partner/deals")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_partner_cannot_use_admin_surface(self, client, chain):
        response = await client.get("/api/admin/deals", headers=auth(chain[0]))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_claim_without_admin_flag(self, client, chain):
        """A token claiming admin is not enough; the stored partner must be an admin."""
        response = await client.get("/api/admin/deals", headers=auth(chain[0], is_admin=True))
        assert response.status_code == 403


class TestPartnerDeals:

    @pytest.mark.asyncio
    async def test_submit_and_list_own_deals(self, client, chain):
        referrer, level2, _ = chain
        deal = await submit(client, referrer)
        await submit(client, level2, "Other Ltd")

        assert deal["stage"] == "quote_request_received"
        assert deal["referrer_id"] == referrer.id

        response = await client.get("/api/partner/deals", headers=auth(referrer))
        assert [d["id"] for d in response.json()] == [deal["id"]]

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, client, chain):
        response = await client.post(
            "/api/partner/deals",
            json={"business_name": "Cafe", "stage": "completed"},
            headers=auth(chain[0]),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_other_partners_deal_is_hidden(self, client, chain):
        referrer, level2, _ = chain
        deal = await submit(client, referrer)

        response = await client.get(f"/api/partner/deals/{deal['id']}", headers=auth(level2))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_own_summary(self, client, chain):
        referrer, _, _ = chain
        await submit(client, referrer)

        response = await client.get("/api/partner/deals/summary", headers=auth(referrer))
        counts = {row["stage"]: row["count"] for row in response.json()}
        assert counts["quote_request_received"] == 1

    @pytest.mark.asyncio
    async def test_public_business_types(self, client, db):
        from app.services.commission_rates import CommissionRateService

        await CommissionRateService(db).seed_business_types()

        response = await client.get("/api/business-types")
        assert response.status_code == 200
        assert {bt["category"] for bt in response.json()} == {"small_trader", "hospitality", "multisite"}


class TestAdminPipeline:

    @pytest.mark.asyncio
    async def test_advance_and_history(self, client, chain, admin_headers):
        deal = await submit(client, chain[0])

        response = await client.post(
            f"/api/admin/deals/{deal['id']}/advance",
            json={"target_stage": "quote_sent", "quote_delivery_method": "email"},
            headers=admin_headers,
        )
        body = response.json()
        assert response.status_code == 200
        assert body["deal"]["stage"] == "quote_sent"
        assert body["deal"]["version"] == 1
        assert body["audit"]["sequence"] == 1
        assert body["warnings"] == []

        history = await client.get(f"/api/admin/deals/{deal['id']}/history", headers=admin_headers)
        assert [h["to_stage"] for h in history.json()] == ["quote_request_received", "quote_sent"]

    @pytest.mark.asyncio
    async def test_invalid_transition_is_conflict(self, client, chain, admin_headers):
        deal = await submit(client, chain[0])

        response = await client.post(
            f"/api/admin/deals/{deal['id']}/advance",
            json={"target_stage": "approved"},
            headers=admin_headers,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_transition"

    @pytest.mark.asyncio
    async def test_unknown_stage_is_validation_error(self, client, chain, admin_headers):
        deal = await submit(client, chain[0])

        response = await client.post(
            f"/api/admin/deals/{deal['id']}/advance",
            json={"target_stage": "signed"},
            headers=admin_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_deal(self, client, admin_headers):
        response = await client.get("/api/admin/deals/missing", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "deal_not_found"


class TestCommissionFlow:

    @pytest.mark.asyncio
    async def test_calculate_override_finalize_approve_withdraw(self, client, chain, admin_headers):
        referrer, level2, level3 = chain
        deal = await submit(client, referrer)
        await advance_to_approved(client, deal["id"], admin_headers)

        calculated = await client.post(
            f"/api/admin/deals/{deal['id']}/commission/calculate",
            json={"total_payable_amount": "333.33"},
            headers=admin_headers,
        )
        breakdown = calculated.json()
        assert calculated.status_code == 200
        assert [l["auto_amount"] for l in breakdown["lines"]] == ["200.00", "66.67", "33.33"]
        assert breakdown["remainder"] == "33.33"

        overridden = await client.post(
            "/api/admin/commission/override",
            json={"breakdown": breakdown, "level": 2, "new_amount": "100.00"},
            headers=admin_headers,
        )
        breakdown = overridden.json()
        assert overridden.status_code == 200
        assert breakdown["lines"][1]["final_amount"] == "100.00"
        assert breakdown["total_distributed"] == "333.33"

        finalized = await client.post(
            f"/api/admin/deals/{deal['id']}/commission/finalize",
            json={"breakdown": breakdown},
            headers=admin_headers,
        )
        assert finalized.status_code == 200, finalized.text
        approvals = {a["level"]: a for a in finalized.json()["approvals"]}
        assert approvals[2]["recipient_id"] == level2.id
        assert approvals[2]["overridden"] is True

        again = await client.post(
            f"/api/admin/deals/{deal['id']}/commission/finalize",
            json={"breakdown": breakdown},
            headers=admin_headers,
        )
        assert again.status_code == 409
        assert again.json()["code"] == "already_finalized"

        level2_id = approvals[2]["id"]
        forbidden = await client.post(
            f"/api/partner/commission/approvals/{level2_id}/approve", headers=auth(referrer)
        )
        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "not_recipient"

        early = await client.post(
            f"/api/admin/commission/approvals/{level2_id}/withdraw", json={}, headers=admin_headers
        )
        assert early.status_code == 409
        assert early.json()["code"] == "not_approved"

        approved = await client.post(
            f"/api/partner/commission/approvals/{level2_id}/approve", headers=auth(level2)
        )
        assert approved.json()["approval"]["approval_status"] == "approved"

        first = await client.post(
            f"/api/admin/commission/approvals/{level2_id}/withdraw",
            json={"transfer_reference": "BACS-1"},
            headers=admin_headers,
        )
        second = await client.post(
            f"/api/admin/commission/approvals/{level2_id}/withdraw",
            json={"transfer_reference": "BACS-2"},
            headers=admin_headers,
        )
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert second.json()["entry"]["id"] == first.json()["entry"]["id"]

        summary = await client.get("/api/partner/commission/summary", headers=auth(level2))
        assert summary.json()["paid"] == "100.00"

        mine = await client.get("/api/partner/commission/approvals", headers=auth(level3))
        assert [a["level"] for a in mine.json()] == [3]

    @pytest.mark.asyncio
    async def test_finalize_with_changed_recipient(self, client, chain, admin_headers):
        deal = await submit(client, chain[0])
        await advance_to_approved(client, deal["id"], admin_headers)
        calculated = await client.post(
            f"/api/admin/deals/{deal['id']}/commission/calculate",
            json={"total_payable_amount": "100.00"},
            headers=admin_headers,
        )
        breakdown = calculated.json()
        breakdown["lines"][0]["recipient_id"] = "someone-else"

        response = await client.post(
            f"/api/admin/deals/{deal['id']}/commission/finalize",
            json={"breakdown": breakdown},
            headers=admin_headers,
        )
        assert response.status_code == 422
        assert response.json()["code"] == "breakdown_mismatch"

    @pytest.mark.asyncio
    async def test_sub_penny_total_rejected(self, client, chain, admin_headers):
        deal = await submit(client, chain[0])

        response = await client.post(
            f"/api/admin/deals/{deal['id']}/commission/calculate",
            json={"total_payable_amount": "10.005"},
            headers=admin_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_huge_exponent_total_rejected(self, client, chain, admin_headers):
        deal = await submit(client, chain[0])

        for total in ("1e30", "10000000000.00"):
            response = await client.post(
                f"/api/admin/deals/{deal['id']}/commission/calculate",
                json={"total_payable_amount": total},
                headers=admin_headers,
            )
            assert response.status_code == 422


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthz(self, client):
        response = await client.get("/api/healthz")
        assert response.json() == {"status": "ok"}
