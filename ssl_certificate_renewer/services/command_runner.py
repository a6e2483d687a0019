"""
外部命令执行服务
"""
import shlex
import subprocess
import time
import logging
from typing import Optional, Sequence, Union

from ..interfaces import CommandRunnerInterface
from ..models import CommandResult
from ..exceptions import ExternalCommandError


class SubprocessCommandRunner(CommandRunnerInterface):
    """基于 subprocess 的命令执行器，每条命令都有超时限制"""

    def __init__(self, default_timeout: float = 300.0):
        """
        初始化命令执行器

        Args:
            default_timeout: 默认超时时间（秒）
        """
        self.default_timeout = default_timeout
        self.logger = logging.getLogger(__name__)

    def run(self, command: Union[str, Sequence[str]], timeout: Optional[float] = None) -> CommandResult:
        """
        执行外部命令

        Args:
            command: 命令字符串（交给 /bin/sh 执行，支持 &&、管道和重定向）或参数列表（直接执行）
            timeout: 超时时间，如果为None则使用默认值

        Returns:
            CommandResult: 命令执行结果

        Raises:
            ExternalCommandError: 命令不存在、非零退出或超时
        """
        use_shell = isinstance(command, str)
        if use_shell:
            args = command.strip()
            command_text = args
        else:
            args = list(command)
            command_text = " ".join(shlex.quote(arg) for arg in args)
        timeout = timeout or self.default_timeout

        if not args:
            raise ExternalCommandError("命令为空", command=command_text)

        self.logger.debug(f"执行命令: {command_text}（超时 {timeout} 秒）")
        start_time = time.monotonic()

        try:
            completed = subprocess.run(
                args,
                shell=use_shell,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalCommandError(
                f"命令执行超时（{timeout}秒）: {command_text}",
                command=command_text,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                timed_out=True,
            ) from e
        except OSError as e:
            raise ExternalCommandError(
                f"无法启动命令: {command_text}: {e}",
                command=command_text,
                stderr=str(e),
            ) from e

        duration = time.monotonic() - start_time

        if completed.returncode != 0:
            raise ExternalCommandError(
                f"命令退出码 {completed.returncode}: {command_text}",
                command=command_text,
                returncode=completed.returncode,
                stdout=completed.stdout or "",
                stderr=completed.stderr or "",
            )

        return CommandResult(
            command=command_text,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=duration,
        )


def _decode(output) -> str:
    # TimeoutExpired 携带的输出可能是 bytes
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output
