"""Unit tests for typed ERP reads and the device registration write."""

from datetime import date

import pytest

from erp.deadline import Deadline
from erp.errors import UserNotAuthorized, UserNotFound
from erp.queries import (
    DEVICE_ENTITY,
    count_visible_lines,
    fetch_device,
    fetch_occupancy,
    fetch_origin,
    fetch_user_permissions,
    register_device,
    verify_user_access,
)


class TestPermissions:
    def test_decodes_flags_and_warehouses(self, fake_gateway):
        fake_gateway.set_permissions(TRANSF="N", CRIAPICK="N")

        permissions = fetch_user_permissions(fake_gateway, 42, Deadline.after(5))

        assert permissions.operator_id == 42
        assert permissions.warehouse_codes == "1, 2"
        assert permissions.can_transfer is False
        assert permissions.can_withdraw is True
        assert permissions.can_pick is True
        assert permissions.can_correct is True
        assert permissions.can_withdraw_from_pick_location is True
        assert permissions.can_create_pick_location is False
        assert "WHERE p.CODUSU = 42" in fake_gateway.queries[0]

    def test_no_profile_is_none(self, fake_gateway):
        fake_gateway.permissions_row = None
        assert fetch_user_permissions(fake_gateway, 42, Deadline.after(5)) is None


class TestLocations:
    def test_origin_product_code_has_no_decimals(self, fake_gateway):
        fake_gateway.origin_row = [1001.0, "S"]

        origin = fetch_origin(fake_gateway, 1, 10, Deadline.after(5))

        assert origin.product_code == "1001"
        assert origin.is_pick_location is True

    def test_missing_origin_is_none(self, fake_gateway):
        fake_gateway.origin_row = None
        assert fetch_origin(fake_gateway, 1, 10, Deadline.after(5)) is None

    def test_occupancy_address_is_sanitized(self, fake_gateway):
        fake_gateway.occupancy_row = [0, 0]

        occupancy = fetch_occupancy(fake_gateway, 2, "B7' OR '1'='1", Deadline.after(5))

        assert occupancy.is_empty
        assert "SEQEND = 'B7 OR 1=1'" in fake_gateway.queries[0]

    def test_visible_line_count(self, fake_gateway):
        assert count_visible_lines(fake_gateway, "5001", Deadline.after(5)) == 0


class TestLoginChecks:
    def test_user_access_returns_operator_id(self, fake_gateway):
        assert verify_user_access(fake_gateway, "joao", Deadline.after(5)) == 42
        assert "NOMEUSU = 'JOAO'" in fake_gateway.queries[0]

    def test_unknown_user(self, fake_gateway):
        fake_gateway.user_row = None
        with pytest.raises(UserNotFound):
            verify_user_access(fake_gateway, "ghost", Deadline.after(5))

    def test_user_without_profile(self, fake_gateway):
        fake_gateway.user_row = [42, "FALSE"]
        with pytest.raises(UserNotAuthorized):
            verify_user_access(fake_gateway, "joao", Deadline.after(5))

    def test_device_active_flag(self, fake_gateway):
        fake_gateway.device_row = ["device-1", 42, "N"]

        device = fetch_device(fake_gateway, 42, "device-1", Deadline.after(5))

        assert device.active is False

    def test_register_device_writes_inactive_record(self, fake_gateway):
        register_device(fake_gateway, 42, "device-9", Deadline.after(5), today=date(2024, 3, 5))

        save = fake_gateway.saves_to(DEVICE_ENTITY)[0]
        assert save["session_handle"] is None
        assert save["records"][0].values == {
            "0": "42",
            "1": "device-9",
            "2": "Novo Dispositivo",
            "3": "N",
            "4": "05/03/2024",
        }
