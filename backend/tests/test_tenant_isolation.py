# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

These tests create two businesses with separate locations and users, then
verify that:
1. A user of Business A cannot read or write data of Business B
2. Passing a foreign location_id is rejected
3. Cross-tenant lookups answer "not found" (404), never revealing existence
4. Location access inside a business is enforced for location-scoped work
"""

import pytest

from storeline.models import Product
from storeline.services.auth_service import create_user
from storeline.services.permission_service import PermissionDeniedError
from storeline.services.product_service import create_product, get_product
from storeline.services.session_service import create_session, validate_session
from storeline.services.shift_service import open_shift
from storeline.services.sod_service import get_sod_settings, update_sod_settings
from storeline.services.tenant_service import (
    LocationAccessError,
    TenantAccessError,
    get_business_locations,
    require_destination_access,
    require_location_in_business,
    require_origin_access,
)
from storeline.services.transfer_service import create_transfer
from storeline.services.user_service import add_user_location
from conftest import PASSWORD


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_location_in_business_valid(self, business_a, location_a1):
        result = require_location_in_business(location_a1.id, business_a.id)
        assert result.id == location_a1.id

    def test_require_location_in_business_cross_tenant(self, business_a, location_b1):
        with pytest.raises(TenantAccessError):
            require_location_in_business(location_b1.id, business_a.id)

    def test_require_location_in_business_nonexistent(self, business_a):
        with pytest.raises(TenantAccessError):
            require_location_in_business(99999, business_a.id)

    def test_get_business_locations(self, business_a, business_b, location_a1, location_a2, location_b1):
        ids_a = [loc.id for loc in get_business_locations(business_a.id)]
        ids_b = [loc.id for loc in get_business_locations(business_b.id)]

        assert ids_a == [location_a1.id, location_a2.id]
        assert ids_b == [location_b1.id]


class TestSessionTenantContext:
    """Sessions carry tenant context."""

    def test_session_captures_business_and_location(self, manager_a, business_a, location_a1):
        session, token = create_session(user_id=manager_a.id)

        assert session.business_id == business_a.id
        assert session.location_id == location_a1.id

    def test_validate_session_returns_context(self, manager_a, business_a):
        _, token = create_session(user_id=manager_a.id)

        context = validate_session(token)

        assert context is not None
        assert context.business_id == business_a.id
        assert context.user.id == manager_a.id

    def test_deactivated_business_invalidates_session(self, db_session, manager_a, business_a):
        _, token = create_session(user_id=manager_a.id)
        business_a.is_active = False
        db_session.commit()

        assert validate_session(token) is None


class TestProductTenantIsolation:

    def test_cross_tenant_product_read_is_not_found(self, admin_a, product_b):
        with pytest.raises(TenantAccessError):
            get_product(admin_a, product_b.id)

    def test_cross_tenant_product_api_is_404(self, client, admin_headers, product_b):
        resp = client.get(f"/api/products/{product_b.id}", headers=admin_headers)
        assert resp.status_code == 404

    def test_cross_tenant_product_update_is_404(self, client, admin_headers, product_b):
        resp = client.put(f"/api/products/{product_b.id}", json={"name": "Hijacked"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_product_list_is_scoped(self, client, admin_headers, product_a, product_b):
        resp = client.get("/api/products", headers=admin_headers)
        assert resp.status_code == 200
        assert [p["sku"] for p in resp.json["products"]] == ["RICE-5"]

    def test_sku_unique_per_business_not_global(self, db_session, admin_a, admin_b):
        create_product(admin_a, name="Water", sku="SAME-SKU")
        create_product(admin_b, name="Water", sku="SAME-SKU")

        assert db_session.query(Product).filter_by(sku="SAME-SKU").count() == 2


class TestUserTenantIsolation:

    def test_same_username_different_businesses(self, business_a, business_b, location_a1, location_b1):
        user_a = create_user("frontdesk", "fd@acme.test", PASSWORD, business_a.id, location_a1.id)
        user_b = create_user("frontdesk", "fd@beta.test", PASSWORD, business_b.id, location_b1.id)

        assert user_a.id != user_b.id
        assert user_a.business_id != user_b.business_id

    def test_user_cannot_be_placed_in_foreign_location(self, business_a, location_b1):
        with pytest.raises(ValueError):
            create_user("stray", "stray@acme.test", PASSWORD, business_a.id, location_b1.id)

    def test_extra_location_must_be_in_business(self, admin_a, cashier_a, location_b1):
        with pytest.raises(TenantAccessError):
            add_user_location(admin_a, cashier_a.id, location_b1.id)

    def test_user_list_api_is_scoped(self, client, admin_headers, admin_b):
        resp = client.get("/api/users", headers=admin_headers)
        assert "admin_b" not in {u["username"] for u in resp.json["users"]}


class TestLocationAccess:
    """Location-scoped work is limited to the user's own locations."""

    def test_cashier_cannot_open_shift_elsewhere(self, cashier_a, location_a2):
        with pytest.raises(LocationAccessError):
            open_shift(cashier_a, location_a2.id, 0)

    def test_cashier_can_open_shift_at_extra_location(self, admin_a, cashier_a, location_a2):
        add_user_location(admin_a, cashier_a.id, location_a2.id)

        shift = open_shift(cashier_a, location_a2.id, 0)
        assert shift.location_id == location_a2.id

    def test_cannot_open_shift_in_foreign_business(self, cashier_a, location_b1):
        with pytest.raises(TenantAccessError):
            open_shift(cashier_a, location_b1.id, 0)

    def test_origin_access(self, clerk_a, receiver_a, admin_a, location_a1):
        require_origin_access(clerk_a, location_a1.id)
        require_origin_access(admin_a, location_a1.id)
        with pytest.raises(LocationAccessError):
            require_origin_access(receiver_a, location_a1.id)

    def test_destination_access(self, clerk_a, receiver_a, location_a1, location_a2):
        require_destination_access(receiver_a, location_a2.id, location_a1.id)
        with pytest.raises(LocationAccessError):
            require_destination_access(clerk_a, location_a2.id, location_a1.id)

    def test_all_locations_user_cannot_receive_at_own_origin(self, admin_a, location_a1, location_a2):
        """A user sitting at the origin cannot also act as the destination."""
        with pytest.raises(LocationAccessError):
            require_destination_access(admin_a, location_a2.id, location_a1.id)

    def test_transfer_from_other_location_denied(self, receiver_a, location_a1, location_a2, stocked_a):
        with pytest.raises(LocationAccessError):
            create_transfer(
                receiver_a, location_a1.id, location_a2.id,
                [{"variation_id": stocked_a.id, "quantity": 1}],
            )

    def test_cashier_lacks_transfer_permission(self, cashier_a, location_a1, location_a2, stocked_a):
        with pytest.raises(PermissionDeniedError):
            create_transfer(
                cashier_a, location_a1.id, location_a2.id,
                [{"variation_id": stocked_a.id, "quantity": 1}],
            )


class TestSODSettingsPerBusiness:

    def test_settings_created_with_defaults(self, business_a):
        settings = get_sod_settings(business_a.id)

        assert settings.enforce_transfer_sod is True
        assert settings.allow_creator_to_check is False
        assert settings.allow_receiver_to_complete is True

    def test_update_does_not_leak_across_businesses(self, admin_a, business_a, business_b):
        update_sod_settings(business_a.id, admin_a, {"allow_creator_to_check": True})

        assert get_sod_settings(business_a.id).allow_creator_to_check is True
        assert get_sod_settings(business_b.id).allow_creator_to_check is False

    def test_unknown_setting_rejected(self, admin_a, business_a):
        with pytest.raises(ValueError):
            update_sod_settings(business_a.id, admin_a, {"allow_everything": True})
