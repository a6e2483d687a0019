"""
证书过期监控与自动续期服务入口
"""
import argparse
import sys
import threading
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import DEFAULT_ENV_FILE, RenewerConfig
from .exceptions import ConfigurationError, ScheduleError
from .interfaces import ExpiryScannerInterface, NotificationServiceInterface
from .models import ExitCode, ScanSummary
from .services.command_runner import SubprocessCommandRunner
from .services.config_validator import ConfigValidator
from .services.error_handler import CommandErrorHandler
from .services.expiry_calculator import ExpiryCalculator
from .services.expiry_scanner import ExpiryScanner, OpenSSLCertificateInspector
from .services.logger import LoggerService
from .services.notification_factory import build_notification_service
from .services.renewal_orchestrator import RenewalOrchestrator


JOB_ID = "certificate_expiry_check"


def parse_schedule(expression: str, tz: Optional[str] = None) -> CronTrigger:
    """
    解析 crontab 格式的调度表达式

    Args:
        expression: 5 段 crontab 表达式，如 '0 0 * * *'
        tz: 时区名称，如 'Europe/Berlin'；为空时使用主机本地时区

    Returns:
        CronTrigger: APScheduler 触发器

    Raises:
        ScheduleError: 表达式或时区无法解析
    """
    try:
        return CronTrigger.from_crontab(expression, timezone=tz or None)
    except (ValueError, TypeError) as e:
        raise ScheduleError(f"无效的调度表达式 '{expression}': {e}") from e
    except KeyError as e:
        # pytz 和 zoneinfo 的未知时区异常都是 KeyError 的子类
        raise ScheduleError(f"无效的时区 '{tz}': {e}") from e


class CertificateRenewalSupervisor:
    """证书续期监控器主类"""

    def __init__(
        self,
        config: RenewerConfig,
        logger_service: Optional[LoggerService] = None,
        scanner: Optional[ExpiryScannerInterface] = None,
        calculator: Optional[ExpiryCalculator] = None,
        orchestrator: Optional[RenewalOrchestrator] = None,
        notification_service: Optional[NotificationServiceInterface] = None,
    ):
        """
        初始化监控器

        Args:
            config: 启动时加载的不可变配置
            其余参数为可替换的服务组件，默认按配置构建
        """
        self.config = config
        self.logger_service = logger_service or LoggerService(
            log_level=config.log_level,
            log_file=config.log_file
        )
        self.error_handler = CommandErrorHandler()

        runner = SubprocessCommandRunner(default_timeout=config.command_timeout)
        self.expiry_calculator = calculator or ExpiryCalculator(threshold_days=config.expiry_threshold_days)
        self.scanner = scanner or ExpiryScanner(
            inspector=OpenSSLCertificateInspector(runner),
            calculator=self.expiry_calculator,
            logger_service=self.logger_service,
            cert_filename=config.cert_filename
        )
        self.notification_service = notification_service or build_notification_service(config)
        self.orchestrator = orchestrator or RenewalOrchestrator(
            config=config,
            runner=runner,
            notification_service=self.notification_service,
            logger_service=self.logger_service,
            error_handler=self.error_handler
        )

        # 同一时间只允许一个检查周期运行
        self._in_flight = threading.Lock()
        self.error_log: List[Dict[str, Any]] = []

        self._log_configuration()

    def _log_configuration(self):
        """记录系统配置信息"""
        self.logger_service.log_configuration_info(self.config.to_dict())
        ConfigValidator(self.config).log_validation_result()

    @property
    def is_running(self) -> bool:
        return self._in_flight.locked()

    def run_check(self) -> Optional[ScanSummary]:
        """
        执行一次检查周期；上一次周期尚未结束时跳过本次触发

        Returns:
            Optional[ScanSummary]: 检查结果，被跳过时返回 None
        """
        if not self._in_flight.acquire(blocking=False):
            self.logger_service.logger.warning("上一次证书检查仍在进行，跳过本次触发")
            return None

        try:
            return self.execute()
        finally:
            self._in_flight.release()

    def execute(self) -> ScanSummary:
        """
        扫描证书目录，有证书达到阈值时执行一次续期

        Returns:
            ScanSummary: 检查结果
        """
        start_time = datetime.now(timezone.utc)
        self.logger_service.reset_stats()

        records = []
        due_domains = []
        outcome = None
        errors = []

        try:
            records = list(self.scanner.scan(self.config.cert_directory))
            due_domains = self.expiry_calculator.filter_due_records(records)

            if due_domains:
                self.logger_service.log_renewal_start(due_domains)
                # 续期命令覆盖所有证书，每个周期最多执行一次
                outcome = self.orchestrator.renew()
                self.error_log.extend(self.orchestrator.errors)
                errors.extend(error['error_message'] for error in self.orchestrator.errors)
            else:
                self.logger_service.logger.info("没有需要续期的证书")

            self.logger_service.logger.info(self.expiry_calculator.get_expiry_summary(records))

        except Exception as e:
            self.logger_service.logger.error(f"执行证书检查时发生错误: {type(e).__name__}: {str(e)}")
            errors.append(str(e))

        self.logger_service.log_scan_end()
        self.logger_service.log_execution_summary()

        skipped = list(getattr(self.scanner, 'skipped', []))
        errors = [error['error_message'] for error in self.logger_service.execution_stats['errors']] + errors

        return ScanSummary(
            total_domains=len(records) + len(skipped),
            records=records,
            due_domains=due_domains,
            skipped=skipped,
            errors=errors,
            renewal_triggered=outcome is not None,
            renewal_outcome=outcome,
            execution_time=(datetime.now(timezone.utc) - start_time).total_seconds()
        )

    def get_error_statistics(self) -> Dict[str, Any]:
        """获取进程启动以来续期相关错误的统计"""
        return self.error_handler.get_error_statistics(self.error_log)

    def start(self, scheduler: Optional[BaseScheduler] = None):
        """
        启动定时检查；启动时立即执行一次检查

        Args:
            scheduler: APScheduler 调度器，默认为阻塞式调度器

        Raises:
            ScheduleError: 调度表达式无效
        """
        trigger = parse_schedule(self.config.check_schedule, self.config.check_timezone)
        scheduler = scheduler or BlockingScheduler(timezone=trigger.timezone)

        self.logger_service.logger.info(
            f"启动证书续期服务，检查计划: {self.config.check_schedule}（时区: {trigger.timezone}）"
        )

        scheduler.add_job(
            self._scheduled_check,
            trigger=trigger,
            id=JOB_ID,
            name="Check and Renew SSL Certificates",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.logger_service.logger.info("执行启动时的初始证书检查")
        self.run_check()

        scheduler.start()

    def _scheduled_check(self):
        self.logger_service.logger.info("执行定时证书检查")
        self.run_check()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssl-renewer-supervisor",
        description="Monitor certificate expiry and renew certificates on a cron schedule."
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single check and exit instead of starting the scheduler"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    命令行入口

    Returns:
        int: 进程退出码（调度模式下正常情况不会返回）
    """
    args = build_arg_parser().parse_args(argv)
    logger = logging.getLogger("ssl_certificate_renewer")

    try:
        config = RenewerConfig.from_env(env_file=DEFAULT_ENV_FILE)
    except ConfigurationError as e:
        LoggerService().logger.error(f"配置错误: {e}")
        return ExitCode.CONFIGURATION_ERROR

    supervisor = CertificateRenewalSupervisor(config)

    if args.once:
        summary = supervisor.run_check()
        failed = summary is not None and summary.renewal_outcome is not None and not summary.renewal_outcome.succeeded
        return ExitCode.CERTIFICATE_FAILED if failed else ExitCode.SUCCESS

    try:
        supervisor.start()
    except ScheduleError as e:
        logger.error(str(e))
        return ExitCode.SCHEDULE_ERROR
    except (KeyboardInterrupt, SystemExit):
        logger.info("证书续期服务已停止")

    return ExitCode.SUCCESS


if __name__ == "__main__":
    sys.exit(main())
