import pytest

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_mobile_number_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "contact": "recipient phone 13812345678"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "13812345678" not in result["contact"]
        assert "***MASKED***" in result["contact"]

    def test_longer_digit_runs_are_not_mobile_numbers(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "ref": "1381234567890"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["ref"] == "1381234567890"

    def test_password_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_authorization_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "Authorization: Bearer.eyJhbGci"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "eyJhbGci" not in result["header"]

    def test_non_sensitive_data_unchanged(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "order.shipped", "rule_id": "101", "status": "shipping"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["rule_id"] == "101"
        assert result["event"] == "order.shipped"
