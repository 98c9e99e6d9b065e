"""
Tests for startup configuration validation.
"""

from contextlib import ExitStack
from unittest.mock import patch

import pytest

from luxepass.main import validate_settings

PRODUCTION_OK = {
    "app_env": "production",
    "admin_api_key": "a-strong-admin-key",
    "whatsapp_app_secret": "meta-app-secret",
    "paystack_secret_key": "sk_live_abc",
}


def _validate(**overrides):
    values = {**PRODUCTION_OK, **overrides}
    with ExitStack() as stack:
        for name, value in values.items():
            stack.enter_context(patch(f"luxepass.main.settings.{name}", value))
        validate_settings()


def test_dev_settings_pass():
    validate_settings()


def test_production_with_all_settings_passes():
    _validate()


def test_production_requires_admin_api_key():
    with pytest.raises(RuntimeError, match="ADMIN_API_KEY is required in production"):
        _validate(admin_api_key=None)


def test_production_requires_whatsapp_app_secret():
    with pytest.raises(RuntimeError, match="WHATSAPP_APP_SECRET is required in production"):
        _validate(whatsapp_app_secret=None)


def test_production_rejects_paystack_test_key():
    with pytest.raises(RuntimeError, match="PAYSTACK_SECRET_KEY is a test key"):
        _validate(paystack_secret_key="sk_test_test")


def test_production_lists_every_problem():
    with pytest.raises(RuntimeError) as exc_info:
        _validate(admin_api_key=None, whatsapp_app_secret=None)

    assert "ADMIN_API_KEY" in str(exc_info.value)
    assert "WHATSAPP_APP_SECRET" in str(exc_info.value)


def test_missing_required_setting():
    with pytest.raises(RuntimeError, match="WHATSAPP_ACCESS_TOKEN"):
        _validate(app_env="dev", whatsapp_access_token="")


@pytest.mark.parametrize("minimum,maximum", [(0, 5_000_000), (10_000, 5_000)])
def test_concierge_bounds_must_be_consistent(minimum, maximum):
    with pytest.raises(RuntimeError, match="CONCIERGE_MIN_AMOUNT"):
        _validate(app_env="dev", concierge_min_amount=minimum, concierge_max_amount=maximum)
