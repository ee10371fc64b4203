"""
Tests for order id validation.

Tests: validate_order_id, validated_order_id
"""
import pytest
from fastapi import HTTPException

from utils.validators import validate_order_id, validated_order_id


class TestValidateOrderId:
    """Test suite for merchant order id validation."""

    @pytest.mark.unit
    @pytest.mark.parametrize("order_id", ["ORDER-1", "a", "shop:2024.11_00042", "X" * 128])
    def test_valid_order_ids_pass(self, order_id):
        assert validate_order_id(order_id) == order_id

    @pytest.mark.unit
    def test_empty_order_id_raises_400(self):
        """Empty string raises HTTP 400."""
        with pytest.raises(HTTPException) as exc_info:
            validate_order_id("")
        assert exc_info.value.status_code == 400
        assert "required" in exc_info.value.detail.lower()

    @pytest.mark.unit
    def test_none_order_id_raises_400(self):
        with pytest.raises(HTTPException) as exc_info:
            validate_order_id(None)
        assert exc_info.value.status_code == 400

    @pytest.mark.unit
    @pytest.mark.parametrize("order_id", ["ORDER 1", "../etc", "order/1", "X" * 129, "ordér", "id;drop"])
    def test_invalid_order_ids_raise_400(self, order_id):
        with pytest.raises(HTTPException) as exc_info:
            validate_order_id(order_id)
        assert exc_info.value.status_code == 400
        assert "invalid order id" in exc_info.value.detail.lower()

    @pytest.mark.unit
    def test_detail_truncates_long_input(self):
        with pytest.raises(HTTPException) as exc_info:
            validate_order_id("!" * 500)
        assert len(exc_info.value.detail) < 100


class TestValidatedOrderIdDependency:

    @pytest.mark.unit
    def test_dependency_delegates(self):
        assert validated_order_id("ORDER-9") == "ORDER-9"
