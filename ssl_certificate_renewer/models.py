"""
数据模型定义
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Optional, List


class ExitCode(IntEnum):
    """进程退出码，每类失败对应一个非零值"""
    SUCCESS = 0
    USAGE_ERROR = 2
    CONFIG_WRITE_FAILED = 3
    ACTIVATION_FAILED = 4
    VALIDATION_FAILED = 5
    RELOAD_FAILED = 6
    CERTIFICATE_FAILED = 7
    SCHEDULE_ERROR = 8
    CONFIGURATION_ERROR = 9


@dataclass
class DomainRecord:
    """单个域名的证书过期信息（每次扫描重新计算）"""
    domain: str
    certificate_path: str
    expiry_date: datetime
    days_remaining: int

    @property
    def is_expired(self) -> bool:
        """判断是否已过期"""
        return self.days_remaining < 0

    def is_due(self, threshold_days: int) -> bool:
        """判断是否需要续期（剩余天数小于等于阈值，含边界）"""
        return self.days_remaining <= threshold_days


@dataclass
class CommandResult:
    """外部命令执行结果"""
    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


@dataclass
class RenewalOutcome:
    """一次续期尝试的结果"""
    succeeded: bool
    stdout: str = ""
    stderr: str = ""
    restarted: bool = False
    restart_succeeded: Optional[bool] = None
    restart_output: str = ""
    subject: str = ""
    message: str = ""
    notified: bool = False


@dataclass
class ScanSummary:
    """一次检查周期的统计结果"""
    total_domains: int
    records: List[DomainRecord]
    due_domains: List[DomainRecord]
    skipped: List[str]
    errors: List[str]
    renewal_triggered: bool
    renewal_outcome: Optional[RenewalOutcome]
    execution_time: float


@dataclass
class ProvisionResult:
    """Nginx配置与证书签发流程的结果"""
    domain: str
    config_path: str
    exit_code: int = 0
    steps_completed: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0
