import pytest
from unittest.mock import MagicMock, patch
from sqlalchemy.orm import sessionmaker

from core.config import settings
from models.order import OrderStatus
from services.email import render_template, send_email, send_templated_email
from services.notifications import SUBJECTS, notify
from tasks.notification_tasks import build_notification, send_order_notification_task


class TestEmailService:
    """Test cases for email service"""

    def test_render_shipped_template(self):
        body = render_template(
            "emails/order_shipped.txt",
            {"customer_name": "Ada", "order_number": "ORD-1", "tracking_number": "1Z999", "carrier": "UPS"},
        )
        assert "Hi Ada" in body
        assert "ORD-1" in body
        assert "1Z999" in body

    def test_render_shipped_template_without_tracking(self):
        body = render_template("emails/order_shipped.txt", {"order_number": "ORD-1"})
        assert "Hi there" in body
        assert "Tracking details will follow" in body

    @pytest.mark.parametrize("event", sorted(SUBJECTS))
    def test_every_event_has_a_template(self, event):
        body = render_template(f"emails/order_{event}.txt", {"order_number": "ORD-9", "refund_window_days": 30})
        assert "ORD-9" in body

    def test_send_email_skipped_in_testing(self):
        assert send_email("a@example.com", "Subject", "Body") is False

    def test_send_email_over_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "TESTING", False)
        monkeypatch.setattr(settings, "SMTP_USERNAME", "mailer")
        monkeypatch.setattr(settings, "SMTP_PASSWORD", "secret")

        with patch("services.email.smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            assert send_email("a@example.com", "Subject", "Body") is True

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "secret")
        message = server.send_message.call_args.args[0]
        assert message["To"] == "a@example.com"
        assert message["Subject"] == "Subject"

    def test_send_templated_email(self):
        with patch("services.email.send_email", return_value=True) as mock_send:
            assert send_templated_email("a@example.com", "Hi", "emails/order_confirmed.txt", {"order_number": "ORD-2"})
        assert "ORD-2" in mock_send.call_args.args[2]


class TestNotifications:
    """Test cases for fire-and-forget notifications"""

    def test_notify_queues_task(self):
        with patch.object(send_order_notification_task, "delay") as mock_delay:
            assert notify(7, "shipped") is True
        mock_delay.assert_called_once_with(7, "shipped")

    def test_notify_swallows_broker_errors(self):
        with patch.object(send_order_notification_task, "delay", side_effect=ConnectionError("redis down")):
            assert notify(7, "shipped") is False

    def test_notify_unknown_event(self):
        with patch.object(send_order_notification_task, "delay") as mock_delay:
            assert notify(7, "processing") is False
        mock_delay.assert_not_called()

    def test_notify_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "NOTIFICATIONS_ENABLED", False)
        with patch.object(send_order_notification_task, "delay") as mock_delay:
            assert notify(7, "shipped") is False
        mock_delay.assert_not_called()


class TestNotificationTask:
    """Test cases for the Celery notification task"""

    @pytest.fixture
    def task_sessions(self, engine):
        with patch("tasks.notification_tasks.SessionLocal", sessionmaker(bind=engine, expire_on_commit=False)):
            yield

    def test_build_notification(self, make_order):
        order = make_order(status=OrderStatus.SHIPPED, tracking_number="1Z999", carrier="UPS")
        message = build_notification(order, "shipped")
        assert message["subject"] == f"Your order {order.order_number} has shipped"
        assert message["template"] == "emails/order_shipped.txt"
        assert message["context"]["tracking_number"] == "1Z999"

    def test_sends_email(self, make_order, task_sessions):
        order = make_order(status=OrderStatus.CONFIRMED)
        with patch("tasks.notification_tasks.send_templated_email", return_value=True) as mock_send:
            result = send_order_notification_task(order.id, "confirmed")

        assert result == {"status": "sent", "to": order.email, "event": "confirmed"}
        assert mock_send.call_args.args[0] == order.email

    def test_missing_order_skipped(self, task_sessions):
        with patch("tasks.notification_tasks.send_templated_email") as mock_send:
            result = send_order_notification_task(999, "confirmed")
        assert result["status"] == "skipped"
        mock_send.assert_not_called()

    def test_retries_on_smtp_failure(self, make_order, task_sessions):
        order = make_order(status=OrderStatus.CONFIRMED)
        with patch("tasks.notification_tasks.send_templated_email", side_effect=OSError("smtp down")), \
                patch.object(send_order_notification_task, "retry", side_effect=RuntimeError("retry")) as mock_retry:
            with pytest.raises(RuntimeError):
                send_order_notification_task(order.id, "confirmed")

        assert mock_retry.call_args.kwargs["countdown"] == 1
