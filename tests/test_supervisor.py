"""
证书续期监控器测试
"""
import os
import threading
import logging
import pytest
from datetime import datetime, timezone, timedelta
from io import StringIO
from zoneinfo import ZoneInfo
from unittest.mock import patch, MagicMock

from apscheduler.triggers.cron import CronTrigger

from ssl_certificate_renewer.supervisor import (
    CertificateRenewalSupervisor,
    parse_schedule,
    main,
    JOB_ID,
)
from ssl_certificate_renewer.config import RenewerConfig
from ssl_certificate_renewer.exceptions import ScheduleError
from ssl_certificate_renewer.interfaces import CertificateInspectorInterface, NotificationServiceInterface
from ssl_certificate_renewer.models import DomainRecord, ExitCode, RenewalOutcome, ScanSummary
from ssl_certificate_renewer.services.expiry_calculator import ExpiryCalculator
from ssl_certificate_renewer.services.expiry_scanner import ExpiryScanner
from ssl_certificate_renewer.services.logger import LoggerService
from ssl_certificate_renewer.services.renewal_orchestrator import RenewalOrchestrator


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_record(domain: str, days: int) -> DomainRecord:
    return DomainRecord(
        domain=domain,
        certificate_path=f"/certs/{domain}/cert.pem",
        expiry_date=NOW + timedelta(days=days),
        days_remaining=days
    )


class TestParseSchedule:
    """调度表达式解析测试类"""

    def test_valid_expression(self):
        """测试有效的 crontab 表达式"""
        assert isinstance(parse_schedule('0 0 * * *'), CronTrigger)
        assert isinstance(parse_schedule('*/15 2-4 * * mon-fri'), CronTrigger)

    @pytest.mark.parametrize("expression", [
        'not a cron',
        '0 0 * *',
        '61 * * * *',
        ''
    ])
    def test_invalid_expression(self, expression):
        """测试无效的表达式"""
        with pytest.raises(ScheduleError):
            parse_schedule(expression)

    def test_explicit_timezone(self):
        """测试指定时区"""
        trigger = parse_schedule('0 0 * * *', 'Europe/Berlin')

        assert str(trigger.timezone) == 'Europe/Berlin'

    def test_default_timezone_is_local(self):
        """测试未指定时区时使用主机本地时区而不是固定 UTC"""
        with patch('apscheduler.triggers.cron.get_localzone', return_value=ZoneInfo('Asia/Shanghai')) as mock_local:
            trigger = parse_schedule('0 0 * * *', '')

        mock_local.assert_called_once()
        assert str(trigger.timezone) == 'Asia/Shanghai'

    def test_unknown_timezone(self):
        """测试未知时区"""
        with pytest.raises(ScheduleError, match="Mars/Olympus_Mons"):
            parse_schedule('0 0 * * *', 'Mars/Olympus_Mons')


class TestCertificateRenewalSupervisor:
    """证书续期监控器测试类"""

    def setup_method(self):
        """测试前准备"""
        self.config = RenewerConfig(cert_directory="/certs", expiry_threshold_days=30)

        self.logger_service = LoggerService(logger_name="test_supervisor_logger")
        self.log_stream = StringIO()
        handler = logging.StreamHandler(self.log_stream)
        handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
        self.logger_service.logger.handlers.clear()
        self.logger_service.logger.addHandler(handler)

        self.scanner = MagicMock()
        self.scanner.skipped = []
        self.orchestrator = MagicMock(spec=RenewalOrchestrator)
        self.orchestrator.errors = []
        self.orchestrator.renew.return_value = RenewalOutcome(
            succeeded=True, subject="Certificate Renewal Successful"
        )
        self.notifier = MagicMock(spec=NotificationServiceInterface)

        self.supervisor = CertificateRenewalSupervisor(
            self.config,
            logger_service=self.logger_service,
            scanner=self.scanner,
            calculator=ExpiryCalculator(threshold_days=30, clock=lambda: NOW),
            orchestrator=self.orchestrator,
            notification_service=self.notifier
        )

    def get_log_output(self) -> str:
        return self.log_stream.getvalue()

    def test_init_logs_configuration(self):
        """测试初始化时记录配置信息"""
        assert "系统配置信息:" in self.get_log_output()
        assert "cert_directory: /certs" in self.get_log_output()

    def test_no_due_certificates(self):
        """测试没有需要续期的证书"""
        self.scanner.scan.return_value = iter([make_record("a.com", 60), make_record("b.com", 31)])

        summary = self.supervisor.run_check()

        assert isinstance(summary, ScanSummary)
        assert summary.total_domains == 2
        assert summary.due_domains == []
        assert summary.renewal_triggered is False
        self.scanner.scan.assert_called_once_with("/certs")
        self.orchestrator.renew.assert_not_called()

    def test_single_renewal_for_multiple_due_domains(self):
        """测试多个域名需要续期时每个周期只续期一次"""
        self.scanner.scan.return_value = iter([
            make_record("a.com", 5),
            make_record("b.com", 30),
            make_record("c.com", -2),
            make_record("d.com", 90)
        ])

        summary = self.supervisor.run_check()

        self.orchestrator.renew.assert_called_once_with()
        assert [record.domain for record in summary.due_domains] == ["a.com", "b.com", "c.com"]
        assert summary.renewal_triggered is True
        assert summary.renewal_outcome.succeeded is True

    def test_skipped_domains_in_summary(self):
        """测试扫描跳过的域名计入结果"""
        self.scanner.scan.return_value = iter([make_record("a.com", 60)])
        self.scanner.skipped = ["b.com: 证书文件不存在"]

        summary = self.supervisor.run_check()

        assert summary.total_domains == 2
        assert summary.skipped == ["b.com: 证书文件不存在"]

    def test_overlapping_trigger_is_skipped(self):
        """测试上一次检查未结束时跳过本次触发"""
        self.supervisor._in_flight.acquire()
        try:
            assert self.supervisor.is_running is True
            assert self.supervisor.run_check() is None
        finally:
            self.supervisor._in_flight.release()

        self.scanner.scan.assert_not_called()
        assert "上一次证书检查仍在进行" in self.get_log_output()

    def test_concurrent_triggers_serialized(self):
        """测试续期进行中再次触发不会重复续期"""
        renewal_started = threading.Event()
        release_renewal = threading.Event()

        def slow_renew():
            renewal_started.set()
            release_renewal.wait(5)
            return RenewalOutcome(succeeded=True, subject="Certificate Renewal Successful")

        self.orchestrator.renew.side_effect = slow_renew
        self.scanner.scan.side_effect = lambda root: iter([make_record("a.com", 1)])

        worker = threading.Thread(target=self.supervisor.run_check)
        worker.start()
        assert renewal_started.wait(5)

        assert self.supervisor.run_check() is None

        release_renewal.set()
        worker.join(5)

        assert self.orchestrator.renew.call_count == 1
        assert self.supervisor.is_running is False

    def test_lock_released_after_error(self):
        """测试检查出错后仍可再次执行"""
        self.scanner.scan.side_effect = RuntimeError("unexpected")

        summary = self.supervisor.run_check()

        assert "unexpected" in summary.errors
        assert self.supervisor.is_running is False
        assert "执行证书检查时发生错误: RuntimeError: unexpected" in self.get_log_output()

    def test_renewal_errors_recorded(self):
        """测试续期错误计入结果与统计"""
        self.scanner.scan.return_value = iter([make_record("a.com", 1)])
        self.orchestrator.errors = [{
            'step': 'renew', 'error_type': 'ExternalCommandError',
            'error_message': '命令退出码 1: certbot renew', 'timed_out': False
        }]
        self.orchestrator.renew.return_value = RenewalOutcome(succeeded=False, subject="Certificate Renewal Failed")

        summary = self.supervisor.run_check()

        assert '命令退出码 1: certbot renew' in summary.errors
        stats = self.supervisor.get_error_statistics()
        assert stats['total_errors'] == 1
        assert stats['failed_steps'] == {'renew': 1}

    def test_start_runs_initial_check_and_schedules(self):
        """测试启动时立即检查并注册定时任务"""
        self.scanner.scan.return_value = iter([])
        scheduler = MagicMock()

        self.supervisor.start(scheduler=scheduler)

        self.scanner.scan.assert_called_once_with("/certs")
        scheduler.add_job.assert_called_once()
        kwargs = scheduler.add_job.call_args[1]
        assert isinstance(kwargs['trigger'], CronTrigger)
        assert kwargs['id'] == JOB_ID
        assert kwargs['max_instances'] == 1
        assert kwargs['coalesce'] is True
        scheduler.start.assert_called_once()

    def test_start_uses_configured_timezone(self):
        """测试定时任务使用配置的时区"""
        supervisor = CertificateRenewalSupervisor(
            RenewerConfig(check_timezone='Europe/Berlin'),
            logger_service=self.logger_service,
            scanner=self.scanner,
            orchestrator=self.orchestrator,
            notification_service=self.notifier
        )
        self.scanner.scan.return_value = iter([])
        scheduler = MagicMock()

        supervisor.start(scheduler=scheduler)

        trigger = scheduler.add_job.call_args[1]['trigger']
        assert str(trigger.timezone) == 'Europe/Berlin'
        assert "时区: Europe/Berlin" in self.get_log_output()

    def test_scheduled_job_runs_check(self):
        """测试定时任务执行检查"""
        self.scanner.scan.return_value = iter([])
        scheduler = MagicMock()
        self.supervisor.start(scheduler=scheduler)

        job = scheduler.add_job.call_args[0][0]
        self.scanner.scan.return_value = iter([make_record("a.com", 3)])
        job()

        assert self.scanner.scan.call_count == 2
        self.orchestrator.renew.assert_called_once()
        assert "执行定时证书检查" in self.get_log_output()

    def test_start_with_invalid_schedule(self):
        """测试无效调度表达式时启动失败且不执行检查"""
        supervisor = CertificateRenewalSupervisor(
            RenewerConfig(check_schedule='every day'),
            logger_service=self.logger_service,
            scanner=self.scanner,
            orchestrator=self.orchestrator,
            notification_service=self.notifier
        )
        scheduler = MagicMock()

        with pytest.raises(ScheduleError):
            supervisor.start(scheduler=scheduler)

        self.scanner.scan.assert_not_called()
        scheduler.start.assert_not_called()


class TestSupervisorWithScanner:
    """监控器与真实扫描器的集成测试"""

    def setup_method(self):
        """测试前准备"""
        self.inspector = MagicMock(spec=CertificateInspectorInterface)
        self.calculator = ExpiryCalculator(threshold_days=30, clock=lambda: NOW)
        self.logger_service = LoggerService(logger_name="test_supervisor_integration")
        self.logger_service.logger.handlers.clear()
        self.logger_service.logger.addHandler(logging.NullHandler())
        self.orchestrator = MagicMock(spec=RenewalOrchestrator)
        self.orchestrator.errors = []
        self.orchestrator.renew.return_value = RenewalOutcome(succeeded=True)

    def run_with_expiry(self, tmp_path, days):
        domain_dir = tmp_path / "example.com"
        domain_dir.mkdir()
        (domain_dir / "cert.pem").write_text("cert")
        self.inspector.get_expiry_date.return_value = NOW + timedelta(days=days)

        supervisor = CertificateRenewalSupervisor(
            RenewerConfig(cert_directory=str(tmp_path), expiry_threshold_days=30),
            logger_service=self.logger_service,
            scanner=ExpiryScanner(self.inspector, self.calculator, self.logger_service),
            calculator=self.calculator,
            orchestrator=self.orchestrator,
            notification_service=MagicMock(spec=NotificationServiceInterface)
        )
        return supervisor.run_check()

    @pytest.mark.parametrize("days, triggered", [
        (29, True),
        (30, True),
        (31, False),
    ])
    def test_threshold_example(self, tmp_path, days, triggered):
        """测试阈值30天时 29/30/31 天的续期触发情况"""
        summary = self.run_with_expiry(tmp_path, days)

        assert summary.renewal_triggered is triggered
        assert self.orchestrator.renew.call_count == (1 if triggered else 0)


class TestMain:
    """命令行入口测试类"""

    @patch.dict(os.environ, {'DAYS_BEFORE_EXPIRY': 'abc'})
    def test_configuration_error(self):
        """测试配置错误时返回对应退出码"""
        assert main([]) == ExitCode.CONFIGURATION_ERROR

    @patch('ssl_certificate_renewer.supervisor.CertificateRenewalSupervisor')
    def test_reads_env_file_from_working_directory(self, mock_supervisor, tmp_path, monkeypatch):
        """测试从工作目录下的 .env 文件读取配置"""
        (tmp_path / ".env").write_text("CHECK_TIMEZONE=Europe/Berlin\nCERTBOT_COMMAND=certbot renew && true\n")
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv('CHECK_TIMEZONE', raising=False)
        monkeypatch.delenv('CERTBOT_COMMAND', raising=False)

        assert main([]) == ExitCode.SUCCESS

        config = mock_supervisor.call_args[0][0]
        assert config.check_timezone == 'Europe/Berlin'
        assert config.renew_command == 'certbot renew && true'

    @patch.dict(os.environ, {'CERT_CHECK_SCHEDULE': 'bad schedule'})
    @patch('ssl_certificate_renewer.supervisor.CertificateRenewalSupervisor')
    def test_schedule_error(self, mock_supervisor):
        """测试无效调度表达式时返回对应退出码"""
        mock_supervisor.return_value.start.side_effect = ScheduleError("无效的调度表达式 'bad schedule'")

        assert main([]) == ExitCode.SCHEDULE_ERROR

    @patch('ssl_certificate_renewer.supervisor.CertificateRenewalSupervisor')
    def test_once(self, mock_supervisor):
        """测试单次检查模式"""
        mock_supervisor.return_value.run_check.return_value = None

        assert main(['--once']) == ExitCode.SUCCESS
        mock_supervisor.return_value.start.assert_not_called()
        mock_supervisor.return_value.run_check.assert_called_once()

    @patch('ssl_certificate_renewer.supervisor.CertificateRenewalSupervisor')
    def test_once_with_failed_renewal(self, mock_supervisor):
        """测试单次检查续期失败时返回非零退出码"""
        summary = MagicMock()
        summary.renewal_outcome = RenewalOutcome(succeeded=False)
        mock_supervisor.return_value.run_check.return_value = summary

        assert main(['--once']) == ExitCode.CERTIFICATE_FAILED

    @patch('ssl_certificate_renewer.supervisor.CertificateRenewalSupervisor')
    def test_keyboard_interrupt(self, mock_supervisor):
        """测试中断时正常退出"""
        mock_supervisor.return_value.start.side_effect = KeyboardInterrupt()

        assert main([]) == ExitCode.SUCCESS
