"""
配置加载

所有配置在进程启动时从环境变量（以及工作目录下的 .env 文件）读取一次，之后不再修改。
"""
import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional

from dotenv import dotenv_values

from .exceptions import ConfigurationError


TRUE_VALUES = {'true', '1', 'yes', 'on'}

DEFAULT_SCHEDULE = '0 0 * * *'
DEFAULT_RENEW_COMMAND = 'sudo certbot renew --non-interactive'
DEFAULT_RESTART_COMMAND = 'sudo systemctl restart nginx'
DEFAULT_CERT_DIRECTORY = '/etc/letsencrypt/live'
DEFAULT_LOG_FILE = 'certbot-renewal.log'
DEFAULT_ENV_FILE = '.env'


@dataclass(frozen=True)
class RenewerConfig:
    """证书续期服务配置"""
    notifications_enabled: bool = False
    notification_channel: str = 'smtp'
    email_from: str = ''
    email_to: str = ''
    smtp_host: str = ''
    smtp_port: int = 587
    smtp_user: str = ''
    smtp_password: str = ''
    sns_topic_arn: str = ''
    aws_region: str = ''
    check_schedule: str = DEFAULT_SCHEDULE
    # 为空表示使用主机本地时区
    check_timezone: str = ''
    renew_command: str = DEFAULT_RENEW_COMMAND
    expiry_threshold_days: int = 30
    cert_directory: str = DEFAULT_CERT_DIRECTORY
    cert_filename: str = 'cert.pem'
    log_file: str = DEFAULT_LOG_FILE
    log_level: str = 'INFO'
    restart_enabled: bool = False
    restart_command: str = DEFAULT_RESTART_COMMAND
    command_timeout: float = 300.0

    def __post_init__(self):
        if self.expiry_threshold_days < 0:
            raise ConfigurationError(
                f"DAYS_BEFORE_EXPIRY 不能为负数: {self.expiry_threshold_days}"
            )
        if self.command_timeout <= 0:
            raise ConfigurationError(
                f"COMMAND_TIMEOUT_SECONDS 必须大于0: {self.command_timeout}"
            )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[str] = None,
    ) -> 'RenewerConfig':
        """
        从环境变量构建配置

        Args:
            environ: 环境变量映射，默认为 os.environ
            env_file: .env 文件路径，文件中的值优先级低于环境变量；文件不存在时忽略

        Returns:
            RenewerConfig: 不可变配置对象

        Raises:
            ConfigurationError: 数值类配置格式错误
        """
        env: Dict[str, str] = {}
        if env_file:
            # 只有键没有值的行会解析为 None
            env.update({key: value for key, value in dotenv_values(env_file).items() if value is not None})
        env.update(os.environ if environ is None else environ)

        return cls(
            notifications_enabled=_get_bool(env, 'EMAIL_NOTIFICATIONS', False),
            notification_channel=env.get('NOTIFICATION_CHANNEL', 'smtp').strip().lower() or 'smtp',
            email_from=env.get('EMAIL_FROM', ''),
            email_to=env.get('EMAIL_TO', ''),
            smtp_host=env.get('EMAIL_SMTP_HOST', ''),
            smtp_port=_get_int(env, 'EMAIL_SMTP_PORT', 587),
            smtp_user=env.get('EMAIL_SMTP_USER', ''),
            smtp_password=env.get('EMAIL_SMTP_PASS', ''),
            sns_topic_arn=env.get('SNS_TOPIC_ARN', ''),
            aws_region=env.get('AWS_REGION', ''),
            check_schedule=env.get('CERT_CHECK_SCHEDULE', DEFAULT_SCHEDULE),
            check_timezone=env.get('CHECK_TIMEZONE', '').strip(),
            renew_command=env.get('CERTBOT_COMMAND', DEFAULT_RENEW_COMMAND),
            expiry_threshold_days=_get_int(env, 'DAYS_BEFORE_EXPIRY', 30),
            cert_directory=env.get('CERT_DIRECTORY', DEFAULT_CERT_DIRECTORY),
            cert_filename=env.get('CERT_FILENAME', 'cert.pem'),
            log_file=env.get('LOG_FILE', DEFAULT_LOG_FILE),
            log_level=env.get('LOG_LEVEL', 'INFO'),
            restart_enabled=_get_bool(env, 'RESTART_NGINX', False),
            restart_command=env.get('NGINX_RESTART_COMMAND', DEFAULT_RESTART_COMMAND),
            command_timeout=_get_float(env, 'COMMAND_TIMEOUT_SECONDS', 300.0),
        )

    @property
    def recipients(self) -> List[str]:
        """收件人列表（EMAIL_TO 可用逗号分隔多个地址）"""
        return [addr.strip() for addr in self.email_to.split(',') if addr.strip()]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUE_VALUES


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigurationError(f"{name} 必须是整数: {value}")


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError:
        raise ConfigurationError(f"{name} 必须是数字: {value}")
