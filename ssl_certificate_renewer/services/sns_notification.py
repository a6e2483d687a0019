"""
SNS通知服务
"""
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..interfaces import NotificationServiceInterface
from ..exceptions import TransportError


# SNS 主题长度上限
MAX_SUBJECT_LENGTH = 100


class SNSNotificationService(NotificationServiceInterface):
    """SNS通知服务实现"""

    channel = "SNS"

    def __init__(self, topic_arn: str, region_name: Optional[str] = None, enabled: bool = True):
        """
        初始化SNS通知服务

        Args:
            topic_arn: SNS主题ARN
            region_name: AWS区域名称，如果为空则从ARN中提取
            enabled: 是否启用通知
        """
        self.topic_arn = topic_arn
        self.enabled = enabled

        # 自动检测区域
        if region_name:
            self.region_name = region_name
        elif self.topic_arn and self.topic_arn.startswith('arn:aws:sns:'):
            self.region_name = self.topic_arn.split(':')[3]
        else:
            self.region_name = 'us-east-1'

        self.logger = logging.getLogger(__name__)

        self.sns_client = None
        try:
            self.sns_client = boto3.client('sns', region_name=self.region_name)
            self.logger.debug(f"SNS客户端初始化成功，区域: {self.region_name}")
        except BotoCoreError as e:
            self.logger.error(f"初始化SNS客户端失败: {str(e)}")

    def send_notification(self, subject: str, message: str) -> bool:
        """
        发布SNS通知（最多尝试一次，失败只记录日志）

        Args:
            subject: 消息主题
            message: 消息内容

        Returns:
            bool: 发送是否成功
        """
        if not self.enabled:
            self.logger.debug(f"通知未启用，跳过: {subject}")
            return False

        try:
            message_id = self._publish(subject, message)
        except TransportError as e:
            self.logger.error(f"SNS发送失败 - {e}")
            return False

        self.logger.info(f"SNS通知发送成功，MessageId: {message_id}")
        return True

    def _publish(self, subject: str, message: str) -> Optional[str]:
        """
        发布消息

        Raises:
            TransportError: 客户端未初始化、主题未配置或发布失败
        """
        if not self._validate_configuration():
            raise TransportError("SNS配置无效", channel=self.channel)

        try:
            response = self.sns_client.publish(
                TopicArn=self.topic_arn,
                Subject=subject[:MAX_SUBJECT_LENGTH],
                Message=message
            )
        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            raise TransportError(f"{error_code}: {error_message}", channel=self.channel) from e
        except BotoCoreError as e:
            raise TransportError(str(e), channel=self.channel) from e

        return response.get('MessageId')

    def _validate_configuration(self) -> bool:
        """
        验证配置是否正确

        Returns:
            bool: 配置是否有效
        """
        if not self.sns_client:
            self.logger.error("SNS客户端未初始化")
            return False

        if not self.topic_arn:
            self.logger.error("SNS主题ARN未配置")
            return False

        return True

    def get_configuration_status(self) -> dict:
        """
        获取配置状态

        Returns:
            dict: 配置状态信息
        """
        return {
            'enabled': self.enabled,
            'sns_client_initialized': self.sns_client is not None,
            'topic_arn_configured': bool(self.topic_arn),
            'topic_arn': self.topic_arn,
            'region_name': self.region_name,
            'configuration_valid': self._validate_configuration()
        }
