"""
证书过期计算服务
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional
from ..models import DomainRecord


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExpiryCalculator:
    """证书过期计算器"""

    def __init__(self, threshold_days: int = 30, clock: Optional[Callable[[], datetime]] = None):
        """
        初始化过期计算器

        Args:
            threshold_days: 续期阈值天数，默认30天
            clock: 返回当前时间的函数，默认为 UTC 当前时间
        """
        self.threshold_days = threshold_days
        self.clock = clock or utc_now

    def calculate_days_remaining(self, expiry_date: datetime) -> int:
        """
        计算距离过期的天数（向下取整）

        Args:
            expiry_date: 过期时间

        Returns:
            int: 剩余天数（负数表示已过期）
        """
        if expiry_date.tzinfo is None:
            expiry_date = expiry_date.replace(tzinfo=timezone.utc)
        # timedelta.days 对负数同样向下取整
        delta = expiry_date - self.clock()
        return delta.days

    def build_record(self, domain: str, certificate_path: str, expiry_date: datetime) -> DomainRecord:
        """构建域名证书记录"""
        return DomainRecord(
            domain=domain,
            certificate_path=certificate_path,
            expiry_date=expiry_date,
            days_remaining=self.calculate_days_remaining(expiry_date)
        )

    def is_due(self, record: DomainRecord) -> bool:
        """
        判断证书是否需要续期（含边界，已过期的证书同样需要续期）

        Args:
            record: 证书记录

        Returns:
            bool: 是否需要续期
        """
        return record.is_due(self.threshold_days)

    def filter_due_records(self, records: List[DomainRecord]) -> List[DomainRecord]:
        """
        筛选需要续期的证书

        Args:
            records: 证书列表

        Returns:
            List[DomainRecord]: 需要续期的证书列表
        """
        return [record for record in records if self.is_due(record)]

    def get_expiry_summary(self, records: List[DomainRecord]) -> str:
        """
        获取过期状态摘要

        Args:
            records: 证书列表

        Returns:
            str: 摘要信息
        """
        expired = [record for record in records if record.is_expired]
        due = [record for record in self.filter_due_records(records) if not record.is_expired]
        healthy = len(records) - len(expired) - len(due)

        summary_parts = [f"总计: {len(records)} 个域名"]

        if expired:
            summary_parts.append(f"已过期: {len(expired)} 个")

        if due:
            summary_parts.append(f"即将过期({self.threshold_days}天内): {len(due)} 个")

        if healthy:
            summary_parts.append(f"健康: {healthy} 个")

        return ", ".join(summary_parts)
