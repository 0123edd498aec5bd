import pytest


@pytest.mark.asyncio
async def test_status_before_onboarding(client, contractor_headers):
    response = await client.get("/api/v1/payouts/connect/status", headers=contractor_headers)
    assert response.status_code == 200
    assert response.json() == {
        "connected": False,
        "accountId": None,
        "payoutsEnabled": False,
        "detailsSubmitted": False,
    }


@pytest.mark.asyncio
async def test_account_link_then_status(client, contractor_headers, contractor_user, db_session):
    link = await client.post("/api/v1/payouts/connect/account-link", headers=contractor_headers)
    assert link.status_code == 200, link.text
    account_id = link.json()["accountId"]
    assert account_id.startswith("acct_")
    assert link.json()["url"].endswith(account_id)

    # A second link reuses the same connected account
    again = await client.post("/api/v1/payouts/connect/account-link", headers=contractor_headers)
    assert again.json()["accountId"] == account_id

    status = await client.get("/api/v1/payouts/connect/status", headers=contractor_headers)
    assert status.json()["connected"] is True
    assert status.json()["payoutsEnabled"] is True

    await db_session.refresh(contractor_user)
    assert contractor_user.stripe_account_id == account_id
    assert contractor_user.payouts_enabled is True


@pytest.mark.asyncio
async def test_homeowners_have_no_payout_account(client, auth_headers):
    response = await client.post("/api/v1/payouts/connect/account-link", headers=auth_headers)
    assert response.status_code == 403
