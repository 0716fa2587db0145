import logging

from services.redaction import mask_phone, redact_dict, redact_text


def test_redact_text_masks_ghana_numbers():
    text = "payer 0241234567 msisdn 233201234567 intl +233551234567"
    redacted = redact_text(text)
    assert "0241234567" not in redacted
    assert "233201234567" not in redacted
    assert "+233551234567" not in redacted
    assert "024****567" in redacted


def test_redact_text_leaves_other_numbers():
    assert redact_text("amount 2000 ref FN-1700000000000-123") == "amount 2000 ref FN-1700000000000-123"


def test_redact_dict_masks_sensitive_keys():
    payload = {
        "x-api-key": "k-123",
        "X-API-PUBKEY": "pub",
        "agent_api": "cc-key",
        "otpcode": "123456",
        "secret": "s3cret",
        "payer": "0241234567",
        "nested": {"recipient_msisdn": "0241234567", "Authorization": "Bearer x"},
    }
    redacted = redact_dict(payload)
    assert redacted["x-api-key"] == "[REDACTED]"
    assert redacted["X-API-PUBKEY"] == "[REDACTED]"
    assert redacted["agent_api"] == "[REDACTED]"
    assert redacted["otpcode"] == "[REDACTED]"
    assert redacted["secret"] == "[REDACTED]"
    assert redacted["payer"] == "024****567"
    assert redacted["nested"]["recipient_msisdn"] == "024****567"
    assert redacted["nested"]["Authorization"] == "[REDACTED]"


def test_mask_phone():
    assert mask_phone("0241234567") == "024****567"
    assert mask_phone("123") == "123"


def test_log_line_uses_redaction_helper(caplog):
    logger = logging.getLogger("redaction-test")
    caplog.set_level(logging.INFO)
    logger.info("payload=%s", redact_text("payer 0241234567 otp 1234"))
    assert "0241234567" not in caplog.text
