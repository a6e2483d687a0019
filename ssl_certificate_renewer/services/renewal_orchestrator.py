"""
证书续期编排服务
"""
import logging
from typing import Optional

from ..config import RenewerConfig
from ..interfaces import CommandRunnerInterface, NotificationServiceInterface
from ..models import RenewalOutcome
from ..exceptions import ExternalCommandError
from .error_handler import CommandErrorHandler
from .logger import LoggerService


SUBJECT_RENEWAL_FAILED = "Certificate Renewal Failed"
SUBJECT_RENEWAL_SUCCEEDED = "Certificate Renewal Successful"
SUBJECT_RESTART_FAILED = "Certificate Renewal Successful, but Nginx Restart Failed"
SUBJECT_RESTART_SUCCEEDED = "Certificate Renewal and Nginx Restart Successful"


class RenewalOrchestrator:
    """
    证书续期编排器

    续期命令本身会处理所有证书，因此每次调用只执行一次续期命令，
    与触发续期的域名无关。
    """

    def __init__(
        self,
        config: RenewerConfig,
        runner: CommandRunnerInterface,
        notification_service: NotificationServiceInterface,
        logger_service: Optional[LoggerService] = None,
        error_handler: Optional[CommandErrorHandler] = None,
    ):
        """
        初始化续期编排器

        Args:
            config: 服务配置
            runner: 外部命令执行器
            notification_service: 通知服务
            logger_service: 日志服务
            error_handler: 错误处理器
        """
        self.config = config
        self.runner = runner
        self.notification_service = notification_service
        self.logger_service = logger_service
        self.error_handler = error_handler or CommandErrorHandler()
        self.logger = logging.getLogger(__name__)

        # 最近一次续期过程中的错误信息
        self.errors = []

    def renew(self) -> RenewalOutcome:
        """
        执行续期，成功后按配置重启服务，并发送一次通知

        Returns:
            RenewalOutcome: 续期结果
        """
        self.errors = []
        self.logger.info("开始证书续期流程")

        try:
            result = self.runner.run(self.config.renew_command, timeout=self.config.command_timeout)
        except ExternalCommandError as e:
            error_info = self.error_handler.handle_command_error('renew', e)
            self.errors.append(error_info)

            message = f"证书续期失败: {self.error_handler.format_error_message(error_info)}"
            outcome = RenewalOutcome(
                succeeded=False,
                stdout=e.stdout,
                stderr=e.stderr,
                subject=SUBJECT_RENEWAL_FAILED,
                message=message
            )
            return self._finish(outcome)

        success_message = f"证书续期成功完成\n{result.stdout}".rstrip()
        self.logger.info(success_message)

        outcome = RenewalOutcome(
            succeeded=True,
            stdout=result.stdout,
            stderr=result.stderr
        )

        if not self.config.restart_enabled:
            outcome.subject = SUBJECT_RENEWAL_SUCCEEDED
            outcome.message = success_message
            return self._finish(outcome)

        return self._finish(self._restart_service(outcome, success_message))

    def _restart_service(self, outcome: RenewalOutcome, success_message: str) -> RenewalOutcome:
        """
        续期成功后重启依赖服务（不重试）

        Args:
            outcome: 续期结果
            success_message: 续期成功的文本

        Returns:
            RenewalOutcome: 更新后的续期结果
        """
        self.logger.info(f"重启服务: {self.config.restart_command}")
        outcome.restarted = True

        try:
            restart_result = self.runner.run(self.config.restart_command, timeout=self.config.command_timeout)
        except ExternalCommandError as e:
            error_info = self.error_handler.handle_command_error('restart', e)
            self.errors.append(error_info)

            restart_error = f"服务重启失败: {self.error_handler.format_error_message(error_info)}"
            outcome.restart_succeeded = False
            outcome.restart_output = e.stderr
            outcome.subject = SUBJECT_RESTART_FAILED
            outcome.message = f"{success_message}\n\n{restart_error}"
            return outcome

        self.logger.info("服务重启成功")
        outcome.restart_succeeded = True
        outcome.restart_output = restart_result.stdout
        outcome.subject = SUBJECT_RESTART_SUCCEEDED
        outcome.message = f"{success_message}\n\n服务重启成功"
        return outcome

    def _finish(self, outcome: RenewalOutcome) -> RenewalOutcome:
        """记录结果并发送唯一一次通知"""
        if self.logger_service:
            self.logger_service.log_renewal_outcome(outcome)

        outcome.notified = self.notification_service.send_notification(outcome.subject, outcome.message)

        if self.logger_service and self.config.notifications_enabled:
            self.logger_service.log_notification_sent(
                getattr(self.notification_service, 'channel', 'notification'),
                outcome.subject,
                outcome.notified
            )

        return outcome
