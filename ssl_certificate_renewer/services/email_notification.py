"""
邮件通知服务
"""
import smtplib
import logging
from email.mime.text import MIMEText
from typing import List, Optional

from ..interfaces import NotificationServiceInterface
from ..exceptions import TransportError


# 该端口使用隐式 TLS，其余端口使用明文连接并尝试 STARTTLS 升级
IMPLICIT_TLS_PORT = 465


class EmailNotificationService(NotificationServiceInterface):
    """SMTP 邮件通知服务实现"""

    channel = "SMTP"

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = '',
        password: str = '',
        sender: str = '',
        recipients: Optional[List[str]] = None,
        enabled: bool = True,
        timeout: float = 30.0,
    ):
        """
        初始化邮件通知服务

        Args:
            host: SMTP 服务器地址
            port: SMTP 端口，465 表示隐式 TLS
            username: SMTP 用户名，为空时不登录
            password: SMTP 密码
            sender: 发件人地址
            recipients: 收件人列表
            enabled: 是否启用通知
            timeout: 连接超时时间（秒）
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.recipients = recipients or []
        self.enabled = enabled
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @property
    def use_implicit_tls(self) -> bool:
        return self.port == IMPLICIT_TLS_PORT

    def send_notification(self, subject: str, message: str) -> bool:
        """
        发送邮件通知（最多尝试一次，失败只记录日志）

        Args:
            subject: 邮件主题
            message: 邮件正文

        Returns:
            bool: 发送是否成功
        """
        if not self.enabled:
            self.logger.debug(f"邮件通知未启用，跳过: {subject}")
            return False

        try:
            self._deliver(subject, message)
        except TransportError as e:
            self.logger.error(f"发送邮件通知失败: {e}")
            return False

        self.logger.info(f"通知邮件已发送: {subject}")
        return True

    def _deliver(self, subject: str, message: str):
        """
        通过 SMTP 投递邮件

        Raises:
            TransportError: 配置缺失或 SMTP 交互失败
        """
        if not self.host:
            raise TransportError("SMTP服务器地址未配置", channel=self.channel)
        if not self.recipients:
            raise TransportError("收件人未配置", channel=self.channel)

        msg = self._build_message(subject, message)

        try:
            if self.use_implicit_tls:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

            with server:
                if not self.use_implicit_tls:
                    server.ehlo()
                    if server.has_extn('starttls'):
                        server.starttls()
                        server.ehlo()
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, self.recipients, msg.as_string())

        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"{type(e).__name__}: {e}", channel=self.channel) from e

    def _build_message(self, subject: str, message: str) -> MIMEText:
        msg = MIMEText(message, 'plain', 'utf-8')
        msg['Subject'] = subject
        msg['From'] = self.sender
        msg['To'] = ", ".join(self.recipients)
        return msg

    def get_configuration_status(self) -> dict:
        """
        获取配置状态

        Returns:
            dict: 配置状态信息
        """
        return {
            'enabled': self.enabled,
            'host_configured': bool(self.host),
            'port': self.port,
            'implicit_tls': self.use_implicit_tls,
            'sender_configured': bool(self.sender),
            'recipient_count': len(self.recipients),
            'authentication': bool(self.username)
        }
