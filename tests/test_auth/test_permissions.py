"""Tests for role capabilities and the route protection dependencies."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient

from staybook.auth.jwt import create_access_token
from staybook.auth.permissions import Capability, has_capability
from staybook.models.user import Role, User


class TestRoleCapabilities:
    """The role -> capability table."""

    @pytest.mark.parametrize("capability", list(Capability))
    def test_admin_has_everything(self, capability: Capability):
        assert has_capability(Role.ADMIN, capability)

    def test_guest_cannot_view_payouts_or_manage_coupons(self):
        assert not has_capability(Role.GUEST, Capability.VIEW_PAYOUTS)
        assert not has_capability(Role.GUEST, Capability.MANAGE_COUPONS)

    def test_guest_can_book_and_redeem(self):
        for capability in (Capability.BOOK_STAY, Capability.APPLY_COUPON, Capability.USE_LOYALTY):
            assert has_capability(Role.GUEST, capability)

    def test_host_can_view_payouts_and_travel(self):
        assert has_capability(Role.HOST, Capability.VIEW_PAYOUTS)
        assert has_capability(Role.HOST, Capability.BOOK_STAY)
        assert not has_capability(Role.HOST, Capability.MANAGE_COUPONS)


@pytest.mark.asyncio
class TestRouteProtection:
    """get_current_user / require_capability, exercised through /api/v1/loyalty."""

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/v1/loyalty")
        assert response.status_code in (401, 403)

    async def test_invalid_token_format(self, client: AsyncClient):
        response = await client.get("/api/v1/loyalty", headers={"Authorization": "Bearer not.a.valid.jwt"})
        assert response.status_code == 401

    async def test_expired_token_rejected(self, client: AsyncClient, guest: User):
        token = create_access_token({"sub": str(guest.id)}, expires_delta=timedelta(seconds=-1))
        response = await client.get("/api/v1/loyalty", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_nonexistent_user_rejected(self, client: AsyncClient):
        token = create_access_token({"sub": str(uuid.uuid4())})
        response = await client.get("/api/v1/loyalty", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_inactive_user_rejected(self, client: AsyncClient, db_session, headers_for):
        user = User(email=f"inactive-{uuid.uuid4().hex[:8]}@test.com", name="Inactive", is_active=False)
        db_session.add(user)
        await db_session.commit()

        response = await client.get("/api/v1/loyalty", headers=headers_for(user))
        assert response.status_code == 403

    async def test_missing_capability(self, client: AsyncClient, guest_headers):
        response = await client.get("/api/v1/payouts", headers=guest_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "permission_denied"

    async def test_active_guest_admitted(self, client: AsyncClient, guest_headers):
        response = await client.get("/api/v1/loyalty", headers=guest_headers)
        assert response.status_code == 200
