"""
异常类型定义
"""
from typing import Optional, Sequence, Union


class RenewerError(Exception):
    """证书续期服务基础异常"""


class ConfigurationError(RenewerError):
    """配置项格式错误"""


class ScheduleError(RenewerError):
    """调度表达式无法解析"""


class FileSystemError(RenewerError):
    """证书文件缺失或目录不可读"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ParseError(RenewerError):
    """证书检查工具输出格式不符合预期"""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class ExternalCommandError(RenewerError):
    """外部命令执行失败（非零退出、程序不存在或超时）"""

    def __init__(
        self,
        message: str,
        command: Union[str, Sequence[str]] = "",
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.command = command if isinstance(command, str) else " ".join(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out


class TransportError(RenewerError):
    """通知发送失败"""

    def __init__(self, message: str, channel: str = ""):
        super().__init__(message)
        self.channel = channel
