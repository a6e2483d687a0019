"""
日志服务
"""
import os
import sys
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from ..interfaces import LoggerServiceInterface
from ..models import DomainRecord, RenewalOutcome


class ISOTimestampFormatter(logging.Formatter):
    """输出 '<ISO-8601 时间戳> - <消息>' 格式的日志"""

    def __init__(self):
        super().__init__('%(asctime)s - %(message)s')

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, timezone.utc).isoformat()


class LoggerService(LoggerServiceInterface):
    """日志服务实现"""

    def __init__(
        self,
        logger_name: str = "ssl_certificate_renewer",
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
    ):
        """
        初始化日志服务

        Args:
            logger_name: 日志器名称
            log_level: 日志级别，如果为None则从环境变量读取
            log_file: 追加写入的日志文件，如果为None则只输出到标准输出
        """
        self.logger_name = logger_name
        self.log_level = log_level or os.getenv('LOG_LEVEL', 'INFO')
        self.log_file = log_file

        # 配置日志器
        self.logger = logging.getLogger(logger_name)
        self._configure_logger()

        # 执行统计
        self.execution_stats = self._empty_stats()

    def _configure_logger(self):
        """配置日志器"""
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        self.logger.setLevel(level)

        # 避免重复添加处理器
        if not self.logger.handlers:
            formatter = ISOTimestampFormatter()

            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(level)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

            if self.log_file:
                file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                self.logger.addHandler(file_handler)

        # 防止日志传播到根日志器
        self.logger.propagate = False

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'start_time': None,
            'end_time': None,
            'root_directory': None,
            'total_domains': 0,
            'due_domains': 0,
            'skipped_domains': 0,
            'renewals': 0,
            'errors': []
        }

    def log_scan_start(self, root_directory: str):
        """
        记录扫描开始

        Args:
            root_directory: 证书根目录
        """
        self.execution_stats['start_time'] = datetime.now(timezone.utc)
        self.execution_stats['root_directory'] = root_directory

        self.logger.info(f"开始扫描证书目录: {root_directory}")

    def log_domain_record(self, record: DomainRecord, threshold_days: int):
        """
        记录证书信息

        Args:
            record: 证书记录
            threshold_days: 续期阈值天数
        """
        self.execution_stats['total_domains'] += 1

        self.logger.info(
            f"域名 {record.domain} 的证书将在 {record.days_remaining} 天后过期 "
            f"({record.expiry_date.isoformat()})"
        )

        if record.is_due(threshold_days):
            self.execution_stats['due_domains'] += 1
            if record.is_expired:
                self.logger.warning(
                    f"域名 {record.domain} 的证书已过期 {abs(record.days_remaining)} 天，需要续期"
                )
            else:
                self.logger.warning(
                    f"域名 {record.domain} 的证书即将过期（阈值 {threshold_days} 天），需要续期"
                )

    def log_domain_skipped(self, domain: str, reason: str):
        """
        记录跳过的域名

        Args:
            domain: 域名
            reason: 跳过原因
        """
        self.execution_stats['skipped_domains'] += 1
        self.logger.warning(f"跳过域名 {domain}: {reason}")

    def log_error(self, domain: str, error: Exception):
        """
        记录错误信息

        Args:
            domain: 域名或出错的对象
            error: 异常对象
        """
        error_info = {
            'domain': domain,
            'error_type': type(error).__name__,
            'error_message': str(error),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

        self.execution_stats['errors'].append(error_info)

        self.logger.error(
            f"{domain} 检查时发生错误: {type(error).__name__}: {str(error)}"
        )

        # 记录详细的堆栈跟踪（调试级别）
        self.logger.debug(f"{domain} 错误堆栈跟踪:\n{traceback.format_exc()}")

    def log_renewal_start(self, due_domains):
        """记录续期开始"""
        domains = ", ".join(record.domain for record in due_domains)
        self.logger.info(f"以下域名的证书需要续期: {domains}，开始执行续期")

    def log_renewal_outcome(self, outcome: RenewalOutcome):
        """
        记录续期结果

        Args:
            outcome: 续期结果
        """
        self.execution_stats['renewals'] += 1

        if not outcome.succeeded:
            self.logger.error(f"证书续期失败: {outcome.subject}")
        elif outcome.restarted and not outcome.restart_succeeded:
            self.logger.error(f"证书续期成功，但服务重启失败: {outcome.subject}")
        else:
            self.logger.info(f"证书续期流程完成: {outcome.subject}")

    def log_scan_end(self):
        """记录扫描结束"""
        self.execution_stats['end_time'] = datetime.now(timezone.utc)

        if self.execution_stats['start_time']:
            duration = (self.execution_stats['end_time'] - self.execution_stats['start_time']).total_seconds()
        else:
            duration = 0

        self.logger.info(
            f"证书检查完成，耗时 {duration:.2f} 秒: "
            f"共 {self.execution_stats['total_domains']} 个域名, "
            f"需要续期 {self.execution_stats['due_domains']} 个, "
            f"跳过 {self.execution_stats['skipped_domains']} 个"
        )

    def log_notification_sent(self, channel: str, subject: str, success: bool):
        """
        记录通知发送状态

        Args:
            channel: 通知渠道（如 "SMTP"、"SNS"）
            subject: 通知主题
            success: 是否发送成功
        """
        if success:
            self.logger.info(f"{channel} 通知发送成功: {subject}")
        else:
            self.logger.error(f"{channel} 通知发送失败: {subject}")

    def log_configuration_info(self, config: Dict[str, Any]):
        """
        记录配置信息

        Args:
            config: 配置信息字典
        """
        # 过滤敏感信息
        safe_config = self._sanitize_config(config)

        self.logger.info("系统配置信息:")
        for key, value in safe_config.items():
            self.logger.info(f"  {key}: {value}")

    def _sanitize_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        清理配置信息中的敏感数据

        Args:
            config: 原始配置

        Returns:
            Dict[str, Any]: 清理后的配置
        """
        sensitive_keys = {'password', 'pass', 'secret', 'token', 'key', 'sns_topic_arn'}

        safe_config = {}
        for key, value in config.items():
            key_lower = key.lower()

            is_sensitive = (
                key_lower in sensitive_keys or
                key_lower.endswith('_key') or
                key_lower.endswith('_secret') or
                key_lower.endswith('_password') or
                key_lower.endswith('_pass') or
                key_lower.endswith('_token')
            )

            if is_sensitive and isinstance(value, str) and value:
                if value.startswith('arn:'):
                    # ARN类型，只显示前缀和后缀
                    parts = value.split(':')
                    if len(parts) >= 6:
                        safe_value = f"{':'.join(parts[:3])}:***:{parts[-2]}:{parts[-1]}"
                    else:
                        safe_value = "***"
                else:
                    safe_value = value[:3] + "***" if len(value) > 3 else "***"
                safe_config[key] = safe_value
            else:
                safe_config[key] = value

        return safe_config

    def get_execution_summary(self) -> Dict[str, Any]:
        """
        获取执行摘要

        Returns:
            Dict[str, Any]: 执行摘要信息
        """
        duration = 0
        if self.execution_stats['start_time'] and self.execution_stats['end_time']:
            duration = (self.execution_stats['end_time'] - self.execution_stats['start_time']).total_seconds()

        return {
            'start_time': self.execution_stats['start_time'].isoformat() if self.execution_stats['start_time'] else None,
            'end_time': self.execution_stats['end_time'].isoformat() if self.execution_stats['end_time'] else None,
            'duration_seconds': duration,
            'root_directory': self.execution_stats['root_directory'],
            'total_domains': self.execution_stats['total_domains'],
            'due_domains': self.execution_stats['due_domains'],
            'skipped_domains': self.execution_stats['skipped_domains'],
            'renewals': self.execution_stats['renewals'],
            'error_count': len(self.execution_stats['errors']),
            'errors': self.execution_stats['errors']
        }

    def log_execution_summary(self):
        """记录执行摘要"""
        summary = self.get_execution_summary()

        self.logger.info("=" * 50)
        self.logger.info("执行摘要")
        self.logger.info("=" * 50)
        self.logger.info(f"证书目录: {summary['root_directory']}")
        self.logger.info(f"执行时长: {summary['duration_seconds']:.2f} 秒")
        self.logger.info(f"总域名数: {summary['total_domains']}")
        self.logger.info(f"需要续期: {summary['due_domains']}")
        self.logger.info(f"跳过域名: {summary['skipped_domains']}")
        self.logger.info(f"续期次数: {summary['renewals']}")

        if summary['errors']:
            self.logger.info(f"错误数量: {summary['error_count']}")
            for i, error in enumerate(summary['errors'][:5], 1):  # 只显示前5个错误
                self.logger.info(f"  错误 {i}: {error['domain']} - {error['error_type']}: {error['error_message']}")

            if len(summary['errors']) > 5:
                self.logger.info(f"  ... 还有 {len(summary['errors']) - 5} 个错误")

        self.logger.info("=" * 50)

    def reset_stats(self):
        """重置执行统计"""
        self.execution_stats = self._empty_stats()
