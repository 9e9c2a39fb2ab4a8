"""Tests for the row-level insert policy on orders."""

import pytest
from ordering.writer.policy import Role, RowLevelPolicy, WriteContext
from shared.errors import AuthorizationDeniedError


class TestRowLevelPolicy:
    def test_service_may_write_anything(self):
        RowLevelPolicy(allow_guest_orders=False).check_insert(WriteContext.service(), "user-001")

    def test_user_may_write_own_order(self):
        RowLevelPolicy().check_insert(WriteContext.authenticated("user-001"), "user-001")

    def test_user_may_not_write_for_someone_else(self):
        with pytest.raises(AuthorizationDeniedError) as exc:
            RowLevelPolicy().check_insert(WriteContext.authenticated("user-001"), "user-002", "TEMP-1")
        assert exc.value.temp_order_id == "TEMP-1"
        assert exc.value.http_status == 403

    def test_signed_in_user_may_not_write_guest_order(self):
        with pytest.raises(AuthorizationDeniedError):
            RowLevelPolicy().check_insert(WriteContext.authenticated("user-001"), None)

    def test_anonymous_guest_order(self):
        RowLevelPolicy(allow_guest_orders=True).check_insert(WriteContext.anon(), None)

    def test_guest_orders_can_be_disabled(self):
        with pytest.raises(AuthorizationDeniedError):
            RowLevelPolicy(allow_guest_orders=False).check_insert(WriteContext.anon(), None)

    def test_anonymous_cannot_write_for_customer(self):
        with pytest.raises(AuthorizationDeniedError):
            RowLevelPolicy().check_insert(WriteContext.anon(), "user-001")

    def test_context_constructors(self):
        assert WriteContext.anon().role == Role.ANON
        assert WriteContext.authenticated("u").principal_id == "u"
        assert WriteContext.service().role == Role.SERVICE
