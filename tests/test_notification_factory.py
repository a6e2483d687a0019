"""
通知渠道选择测试
"""
from unittest.mock import patch

from ssl_certificate_renewer.config import RenewerConfig
from ssl_certificate_renewer.services.email_notification import EmailNotificationService
from ssl_certificate_renewer.services.notification_factory import build_notification_service
from ssl_certificate_renewer.services.sns_notification import SNSNotificationService


class TestBuildNotificationService:
    """通知渠道选择测试类"""

    def test_default_smtp(self):
        """测试默认使用邮件通知"""
        config = RenewerConfig(
            notifications_enabled=True,
            smtp_host='smtp.example.com',
            smtp_port=465,
            email_from='certs@example.com',
            email_to='ops@example.com,admin@example.com'
        )

        service = build_notification_service(config)

        assert isinstance(service, EmailNotificationService)
        assert service.enabled is True
        assert service.recipients == ['ops@example.com', 'admin@example.com']
        assert service.use_implicit_tls is True

    @patch('ssl_certificate_renewer.services.sns_notification.boto3')
    def test_sns_channel(self, mock_boto3):
        """测试选择 SNS 渠道"""
        config = RenewerConfig(
            notification_channel='sns',
            sns_topic_arn='arn:aws:sns:eu-west-1:123456789012:cert-alerts'
        )

        service = build_notification_service(config)

        assert isinstance(service, SNSNotificationService)
        assert service.enabled is False
        mock_boto3.client.assert_called_once_with('sns', region_name='eu-west-1')

    def test_unknown_channel_falls_back_to_smtp(self):
        """测试未知渠道时使用邮件通知"""
        service = build_notification_service(RenewerConfig(notification_channel='pager'))

        assert isinstance(service, EmailNotificationService)
