"""
Tests for Settings helpers and production validation.
"""
import pytest

from config import Settings


def _settings(**overrides):
    base = {
        "environment": "production",
        "merchant_secret": "s3cret",
        "gateway_api_key": "key",
        "cors_origins": "https://shop.example",
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)


class TestProductionValidation:

    @pytest.mark.unit
    def test_complete_production_settings_pass(self):
        _settings().validate_production_settings()

    @pytest.mark.unit
    @pytest.mark.parametrize("overrides,needle", [
        ({"merchant_secret": ""}, "MERCHANT_SECRET"),
        ({"gateway_api_key": ""}, "GATEWAY_API_KEY"),
        ({"cors_origins": "*"}, "CORS_ORIGINS"),
    ])
    def test_missing_production_setting_refuses_start(self, overrides, needle):
        with pytest.raises(ValueError, match=needle):
            _settings(**overrides).validate_production_settings()

    @pytest.mark.unit
    def test_development_only_warns(self, caplog):
        s = _settings(environment="development", merchant_secret="", gateway_api_key="")
        s.validate_production_settings()
        assert "MERCHANT_SECRET is empty" in caplog.text


class TestHelpers:

    @pytest.mark.unit
    def test_cors_origins_list(self):
        s = _settings(cors_origins="https://a.example, https://b.example")
        assert s.cors_origins_list == ["https://a.example", "https://b.example"]

    @pytest.mark.unit
    def test_merchant_secret_bytes(self):
        assert _settings(merchant_secret="abc").merchant_secret_bytes == b"abc"

    @pytest.mark.unit
    def test_transient_regression_off_by_default(self):
        assert Settings(_env_file=None).allow_transient_regression is False
        assert _settings(allow_transient_regression=True).allow_transient_regression is True
