"""
证书目录扫描服务
"""
import os
import re
import logging
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from ..interfaces import (
    CertificateInspectorInterface,
    CommandRunnerInterface,
    ExpiryScannerInterface,
    LoggerServiceInterface,
)
from ..models import DomainRecord
from ..exceptions import ExternalCommandError, FileSystemError, ParseError
from .expiry_calculator import ExpiryCalculator


NOT_AFTER_PATTERN = re.compile(r'notAfter=(.+)')


class OpenSSLCertificateInspector(CertificateInspectorInterface):
    """通过 openssl 命令读取证书过期时间"""

    def __init__(self, runner: CommandRunnerInterface, openssl_binary: str = 'openssl'):
        """
        初始化证书检查器

        Args:
            runner: 外部命令执行器
            openssl_binary: openssl 可执行文件
        """
        self.runner = runner
        self.openssl_binary = openssl_binary
        self.logger = logging.getLogger(__name__)

    def get_expiry_date(self, certificate_path: str) -> datetime:
        """
        获取证书过期时间

        Args:
            certificate_path: 证书文件路径

        Returns:
            datetime: 过期时间（UTC）

        Raises:
            ExternalCommandError: openssl 执行失败
            ParseError: 输出中没有 notAfter 或日期无法解析
        """
        result = self.runner.run(
            [self.openssl_binary, 'x509', '-enddate', '-noout', '-in', certificate_path]
        )
        return self._parse_expiry_date(result.stdout)

    def _parse_expiry_date(self, output: str) -> datetime:
        """
        解析 openssl 输出中的过期时间

        Args:
            output: openssl 输出，如 'notAfter=Dec 31 23:59:59 2024 GMT'

        Returns:
            datetime: 过期时间
        """
        match = NOT_AFTER_PATTERN.search(output or '')
        if not match:
            raise ParseError("输出中未找到 notAfter 字段", output=output)

        # 单位数日期会带两个空格：'Jan  5 ...'
        not_after = " ".join(match.group(1).split())
        try:
            expiry_date = datetime.strptime(not_after, '%b %d %H:%M:%S %Y %Z')
        except ValueError as e:
            raise ParseError(f"无法解析过期时间: {not_after}", output=output) from e

        return expiry_date.replace(tzinfo=timezone.utc)


class ExpiryScanner(ExpiryScannerInterface):
    """证书目录扫描器实现"""

    def __init__(
        self,
        inspector: CertificateInspectorInterface,
        calculator: ExpiryCalculator,
        logger_service: Optional[LoggerServiceInterface] = None,
        cert_filename: str = 'cert.pem',
    ):
        """
        初始化扫描器

        Args:
            inspector: 证书检查器
            calculator: 过期计算器
            logger_service: 日志服务
            cert_filename: 每个域名目录下的证书文件名
        """
        self.inspector = inspector
        self.calculator = calculator
        self.logger_service = logger_service
        self.cert_filename = cert_filename
        self.logger = logging.getLogger(__name__)

        # 最近一次扫描中被跳过的域名诊断信息
        self.skipped: List[str] = []

    def scan(self, root_directory: str) -> Iterator[DomainRecord]:
        """
        扫描证书根目录，逐个产出域名证书记录

        单个域名的错误只会被记录并跳过，不影响其他域名。

        Args:
            root_directory: 证书根目录（如 /etc/letsencrypt/live）

        Yields:
            DomainRecord: 证书记录
        """
        self.skipped = []

        if self.logger_service:
            self.logger_service.log_scan_start(root_directory)

        try:
            entries = sorted(os.listdir(root_directory))
        except OSError as e:
            error = FileSystemError(f"无法读取证书目录 {root_directory}: {e}", path=root_directory)
            self._report_error(root_directory, error)
            return

        for domain in entries:
            domain_path = os.path.join(root_directory, domain)
            if not os.path.isdir(domain_path):
                continue

            record = self._inspect_domain(domain, domain_path)
            if record is not None:
                yield record

    def _inspect_domain(self, domain: str, domain_path: str) -> Optional[DomainRecord]:
        """
        检查单个域名目录

        Args:
            domain: 域名（目录名）
            domain_path: 域名目录路径

        Returns:
            Optional[DomainRecord]: 证书记录，跳过时返回 None
        """
        certificate_path = os.path.join(domain_path, self.cert_filename)

        if not os.path.isfile(certificate_path):
            self._skip(domain, f"证书文件不存在: {certificate_path}")
            return None

        try:
            expiry_date = self.inspector.get_expiry_date(certificate_path)
        except (ParseError, ExternalCommandError) as e:
            self._report_error(domain, e)
            self._skip(domain, str(e))
            return None

        record = self.calculator.build_record(domain, certificate_path, expiry_date)

        if self.logger_service:
            self.logger_service.log_domain_record(record, self.calculator.threshold_days)
        else:
            self.logger.info(
                f"域名 {domain} 的证书将在 {record.days_remaining} 天后过期 "
                f"({record.expiry_date.isoformat()})"
            )

        return record

    def _skip(self, domain: str, reason: str):
        self.skipped.append(f"{domain}: {reason}")
        if self.logger_service:
            self.logger_service.log_domain_skipped(domain, reason)
        else:
            self.logger.warning(f"跳过域名 {domain}: {reason}")

    def _report_error(self, domain: str, error: Exception):
        if self.logger_service:
            self.logger_service.log_error(domain, error)
        else:
            self.logger.error(f"域名 {domain} 检查时发生错误: {error}")
