import pytest

from core.models import AuditLog
from core.services import create_audit_log, safe_audit_log
from core.sms import send_sms


@pytest.mark.django_db
class TestAuditLog:
    def test_create(self, admin_user):
        entry = create_audit_log(
            actor=admin_user,
            action="DEAL_CREATED",
            entity_type="Deal",
            entity_id=42,
            after={"status": "active"},
        )
        assert entry.entity_id == "42"
        assert entry.after_json == {"status": "active"}

    def test_safe_audit_log_never_raises(self, monkeypatch, caplog):
        def _broken(**kwargs):
            raise RuntimeError("audit table locked")

        monkeypatch.setattr(AuditLog.objects, "create", _broken)

        assert safe_audit_log(actor=None, action="X", entity_type="Deal", entity_id=1) is None
        assert "Could not write audit log X" in caplog.text


class TestSendSms:
    def test_no_phone(self):
        assert send_sms("", "hello") is False

    def test_unconfigured_gateway_logs_only(self, settings):
        settings.SMS_GATEWAY_URL = ""
        assert send_sms("+15550100001", "hello") is True
