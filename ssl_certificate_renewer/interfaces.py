"""
服务接口定义
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterator, Optional, Sequence, Union

from .models import CommandResult, DomainRecord, RenewalOutcome


class CommandRunnerInterface(ABC):
    """外部命令执行器接口"""

    @abstractmethod
    def run(self, command: Union[str, Sequence[str]], timeout: Optional[float] = None) -> CommandResult:
        """执行命令，失败时抛出 ExternalCommandError"""
        pass


class CertificateInspectorInterface(ABC):
    """证书检查器接口"""

    @abstractmethod
    def get_expiry_date(self, certificate_path: str) -> datetime:
        """获取证书的 notAfter 时间"""
        pass


class ExpiryScannerInterface(ABC):
    """证书目录扫描器接口"""

    @abstractmethod
    def scan(self, root_directory: str) -> Iterator[DomainRecord]:
        """扫描证书目录"""
        pass


class NotificationServiceInterface(ABC):
    """通知服务接口"""

    @abstractmethod
    def send_notification(self, subject: str, message: str) -> bool:
        """发送通知，失败时返回 False 而不抛出异常"""
        pass


class LoggerServiceInterface(ABC):
    """日志服务接口"""

    @abstractmethod
    def log_scan_start(self, root_directory: str):
        """记录扫描开始"""
        pass

    @abstractmethod
    def log_domain_record(self, record: DomainRecord, threshold_days: int):
        """记录证书信息"""
        pass

    @abstractmethod
    def log_domain_skipped(self, domain: str, reason: str):
        """记录跳过的域名"""
        pass

    @abstractmethod
    def log_error(self, domain: str, error: Exception):
        """记录错误信息"""
        pass

    @abstractmethod
    def log_renewal_outcome(self, outcome: RenewalOutcome):
        """记录续期结果"""
        pass
