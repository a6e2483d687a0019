"""
配置检查服务

只检查必要配置项是否存在，不做格式校验。
"""
import logging
from typing import Dict, List, Any

from ..config import RenewerConfig


class ConfigValidator:
    """配置检查器"""

    def __init__(self, config: RenewerConfig):
        """
        初始化配置检查器

        Args:
            config: 服务配置
        """
        self.config = config
        self.logger = logging.getLogger(__name__)

        # 各通知渠道必需的配置项
        self.required_notification_fields = {
            'smtp': {
                'smtp_host': 'EMAIL_SMTP_HOST',
                'email_from': 'EMAIL_FROM',
                'email_to': 'EMAIL_TO'
            },
            'sns': {
                'sns_topic_arn': 'SNS_TOPIC_ARN'
            }
        }

    def validate_all_configurations(self) -> Dict[str, Any]:
        """
        检查所有配置

        Returns:
            Dict[str, Any]: 检查结果
        """
        validation_result = {
            'is_valid': True,
            'errors': [],
            'warnings': [],
            'configurations': {}
        }

        commands_validation = self.validate_commands_configuration()
        validation_result['configurations']['commands'] = commands_validation
        if not commands_validation['is_valid']:
            validation_result['is_valid'] = False
            validation_result['errors'].extend(commands_validation['errors'])

        notification_validation = self.validate_notification_configuration()
        validation_result['configurations']['notification'] = notification_validation
        # 通知配置缺失只产生警告，不影响续期
        validation_result['warnings'].extend(notification_validation['errors'])
        validation_result['warnings'].extend(notification_validation['warnings'])

        return validation_result

    def validate_commands_configuration(self) -> Dict[str, Any]:
        """
        检查命令与路径配置

        Returns:
            Dict[str, Any]: 检查结果
        """
        result = {
            'is_valid': True,
            'errors': [],
            'missing': []
        }

        required = {
            'renew_command': 'CERTBOT_COMMAND',
            'cert_directory': 'CERT_DIRECTORY',
            'check_schedule': 'CERT_CHECK_SCHEDULE'
        }
        if self.config.restart_enabled:
            required['restart_command'] = 'NGINX_RESTART_COMMAND'

        for field_name, env_name in required.items():
            if not str(getattr(self.config, field_name)).strip():
                result['missing'].append(env_name)
                result['errors'].append(f"缺少必需的配置: {env_name}")
                result['is_valid'] = False

        return result

    def validate_notification_configuration(self) -> Dict[str, Any]:
        """
        检查通知配置

        Returns:
            Dict[str, Any]: 检查结果
        """
        result = {
            'is_valid': True,
            'enabled': self.config.notifications_enabled,
            'channel': self.config.notification_channel,
            'errors': [],
            'warnings': [],
            'missing': []
        }

        if not self.config.notifications_enabled:
            return result

        fields = self.required_notification_fields.get(self.config.notification_channel)
        if fields is None:
            result['warnings'].append(
                f"未知的通知渠道: {self.config.notification_channel}，将使用 smtp"
            )
            fields = self.required_notification_fields['smtp']

        for field_name, env_name in fields.items():
            if not getattr(self.config, field_name):
                result['missing'].append(env_name)
                result['errors'].append(f"已启用通知但缺少配置: {env_name}")
                result['is_valid'] = False

        if self.config.notification_channel == 'smtp' and self.config.smtp_user and not self.config.smtp_password:
            result['warnings'].append("已配置 EMAIL_SMTP_USER 但缺少 EMAIL_SMTP_PASS")

        return result

    def log_validation_result(self) -> Dict[str, Any]:
        """检查配置并记录结果"""
        validation_result = self.validate_all_configurations()

        for error in validation_result['errors']:
            self.logger.error(error)
        for warning in validation_result['warnings']:
            self.logger.warning(warning)

        return validation_result

    def get_configuration_summary(self) -> str:
        """
        获取配置摘要

        Returns:
            str: 配置摘要文本
        """
        validation_result = self.validate_all_configurations()

        lines: List[str] = [
            "配置检查摘要",
            "=" * 30
        ]

        if validation_result['is_valid']:
            lines.append("配置检查通过")
        else:
            lines.append("配置检查失败")

        if validation_result['errors']:
            lines.append("\n错误:")
            for error in validation_result['errors']:
                lines.append(f"  • {error}")

        if validation_result['warnings']:
            lines.append("\n警告:")
            for warning in validation_result['warnings']:
                lines.append(f"  • {warning}")

        notification = validation_result['configurations']['notification']
        lines.append("\n配置详情:")
        lines.append(f"  证书目录: {self.config.cert_directory}")
        lines.append(f"  检查计划: {self.config.check_schedule}")
        lines.append(f"  续期阈值: {self.config.expiry_threshold_days} 天")
        lines.append(f"  通知: {'启用' if notification['enabled'] else '未启用'} ({notification['channel']})")

        return "\n".join(lines)
