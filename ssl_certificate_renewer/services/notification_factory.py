"""
通知服务构建
"""
import logging

from ..config import RenewerConfig
from ..interfaces import NotificationServiceInterface
from .email_notification import EmailNotificationService
from .sns_notification import SNSNotificationService


logger = logging.getLogger(__name__)

SUPPORTED_CHANNELS = ('smtp', 'sns')


def build_notification_service(config: RenewerConfig) -> NotificationServiceInterface:
    """
    根据配置选择通知渠道

    Args:
        config: 服务配置

    Returns:
        NotificationServiceInterface: SMTP（默认）或 SNS 通知服务
    """
    channel = config.notification_channel

    if channel == 'sns':
        return SNSNotificationService(
            topic_arn=config.sns_topic_arn,
            region_name=config.aws_region or None,
            enabled=config.notifications_enabled
        )

    if channel != 'smtp':
        logger.warning(f"未知的通知渠道 {channel}，使用 smtp")

    return EmailNotificationService(
        host=config.smtp_host,
        port=config.smtp_port,
        username=config.smtp_user,
        password=config.smtp_password,
        sender=config.email_from,
        recipients=config.recipients,
        enabled=config.notifications_enabled
    )
