"""
错误处理服务
"""
import logging
from typing import Any, Dict, List
from datetime import datetime, timezone

from ..exceptions import ExternalCommandError, FileSystemError, ParseError


class CommandErrorHandler:
    """外部命令与证书扫描错误处理器"""

    def __init__(self):
        """初始化错误处理器"""
        self.logger = logging.getLogger(__name__)

    def handle_command_error(self, step: str, error: Exception) -> Dict[str, Any]:
        """
        处理外部命令错误

        Args:
            step: 出错的步骤名称（如 "renew"、"restart"）
            error: 异常对象

        Returns:
            Dict[str, Any]: 错误处理结果
        """
        error_info = {
            'step': step,
            'command': getattr(error, 'command', ''),
            'error_type': type(error).__name__,
            'error_message': str(error),
            'returncode': getattr(error, 'returncode', None),
            'stderr': getattr(error, 'stderr', ''),
            'timed_out': getattr(error, 'timed_out', False),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'suggested_action': self._get_suggested_action(error)
        }

        self.logger.error(
            f"步骤 {step} 失败: {error_info['error_message']}"
            + (f"\n{error_info['stderr']}" if error_info['stderr'] else "")
        )

        return error_info

    def format_error_message(self, error_info: Dict[str, Any]) -> str:
        """
        格式化错误信息（用于日志和通知正文）

        Args:
            error_info: handle_command_error 返回的错误信息

        Returns:
            str: 错误文本
        """
        lines = [error_info['error_message']]
        if error_info.get('stderr'):
            lines.append(error_info['stderr'].rstrip())
        return "\n".join(lines)

    def _get_suggested_action(self, error: Exception) -> str:
        """
        获取错误的建议处理方案

        Args:
            error: 异常对象

        Returns:
            str: 建议的处理方案
        """
        if isinstance(error, ExternalCommandError):
            stderr = (error.stderr or '').lower()
            if error.timed_out:
                return "命令执行超时，检查外部程序是否挂起或增加 COMMAND_TIMEOUT_SECONDS"
            # 127 是 shell 找不到命令时的退出码
            if error.returncode is None or error.returncode == 127:
                return "命令无法启动，检查程序是否已安装以及 PATH 配置"
            if 'permission denied' in stderr or 'not permitted' in stderr:
                return "权限不足，使用 sudo 或以 root 身份运行"
            if 'too many certificates' in stderr or 'rate limit' in stderr:
                return "触发证书颁发机构频率限制，稍后再试"
            return "检查命令输出中的错误信息"
        elif isinstance(error, FileSystemError):
            return "检查证书目录和文件是否存在且可读"
        elif isinstance(error, ParseError):
            return "检查 openssl 版本及证书文件格式"
        else:
            return "检查系统日志"

    def get_error_statistics(self, error_list: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        获取错误统计信息

        Args:
            error_list: 错误信息列表

        Returns:
            Dict[str, Any]: 错误统计
        """
        if not error_list:
            return {
                'total_errors': 0,
                'timed_out_errors': 0,
                'error_types': {},
                'failed_steps': {},
                'most_common_error': None
            }

        error_types = {}
        failed_steps = {}
        timed_out_count = 0

        for error_info in error_list:
            error_type = error_info.get('error_type', 'Unknown')
            error_types[error_type] = error_types.get(error_type, 0) + 1

            step = error_info.get('step', 'unknown')
            failed_steps[step] = failed_steps.get(step, 0) + 1

            if error_info.get('timed_out', False):
                timed_out_count += 1

        most_common_error = max(error_types.items(), key=lambda x: x[1])

        return {
            'total_errors': len(error_list),
            'timed_out_errors': timed_out_count,
            'error_types': error_types,
            'failed_steps': failed_steps,
            'most_common_error': most_common_error[0],
            'most_common_error_count': most_common_error[1]
        }
