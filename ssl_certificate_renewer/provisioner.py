"""
Nginx 反向代理配置与证书签发工具
"""
import argparse
import os
import re
import sys
import logging
from dataclasses import dataclass
from typing import List, Optional

from .exceptions import ExternalCommandError, FileSystemError
from .interfaces import CommandRunnerInterface
from .models import ExitCode, ProvisionResult
from .services.command_runner import SubprocessCommandRunner
from .services.error_handler import CommandErrorHandler
from .services.logger import LoggerService


DOMAIN_PATTERN = re.compile(
    r'^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$'
)

NGINX_CONFIG_TEMPLATE = """server {{
    listen 80;
    server_name {domain};

    location / {{
        proxy_pass http://{upstream_host}:{port};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_cache_bypass $http_upgrade;
    }}
}}
"""


@dataclass(frozen=True)
class ProvisionerSettings:
    """配置生成参数"""
    config_dir: str = '/etc/nginx/conf.d'
    # 为空表示 conf.d 目录自动加载；否则在该目录下创建软链接（sites-enabled 方式）
    enabled_dir: str = ''
    upstream_host: str = 'localhost'
    test_command: str = 'nginx -t'
    reload_command: str = 'systemctl reload nginx'
    certbot_binary: str = 'certbot'
    command_timeout: float = 300.0


def validate_domain(domain: str) -> bool:
    """
    验证域名格式

    Args:
        domain: 要验证的域名

    Returns:
        bool: 域名是否有效
    """
    if not domain or not isinstance(domain, str):
        return False
    if len(domain) > 253:
        return False
    return bool(DOMAIN_PATTERN.match(domain))


def render_config(domain: str, port: int, upstream_host: str = 'localhost') -> str:
    """生成反向代理配置文本"""
    return NGINX_CONFIG_TEMPLATE.format(domain=domain, port=port, upstream_host=upstream_host)


class NginxProvisioner:
    """
    Nginx 配置生成器

    每一步都依赖上一步成功；任一步骤失败都会记录日志并终止后续步骤，不做回滚。
    """

    def __init__(self, settings: ProvisionerSettings, runner: Optional[CommandRunnerInterface] = None):
        """
        初始化配置生成器

        Args:
            settings: 配置生成参数
            runner: 外部命令执行器
        """
        self.settings = settings
        self.runner = runner or SubprocessCommandRunner(default_timeout=settings.command_timeout)
        self.error_handler = CommandErrorHandler()
        self.logger = logging.getLogger(__name__)

    def config_path_for(self, domain: str) -> str:
        return os.path.join(self.settings.config_dir, f"{domain}.conf")

    def provision(
        self,
        domain: str,
        port: int,
        ssl: bool = True,
        email: Optional[str] = None,
    ) -> ProvisionResult:
        """
        执行完整的配置流程

        Args:
            domain: 域名
            port: 本地代理端口
            ssl: 是否签发证书
            email: Let's Encrypt 通知邮箱

        Returns:
            ProvisionResult: 执行结果，exit_code 对应失败的步骤
        """
        result = ProvisionResult(domain=domain, config_path=self.config_path_for(domain))

        if not validate_domain(domain):
            return self._fail(result, ExitCode.USAGE_ERROR, f"无效的域名: {domain}")

        try:
            self.write_config(domain, port)
        except FileSystemError as e:
            self.logger.error("可能需要使用 sudo 权限运行")
            return self._fail(result, ExitCode.CONFIG_WRITE_FAILED, str(e))
        result.steps_completed.append('write_config')

        try:
            self.enable_config(domain)
        except FileSystemError as e:
            return self._fail(result, ExitCode.ACTIVATION_FAILED, str(e))
        result.steps_completed.append('enable_config')

        try:
            self._run_step('validate', self.settings.test_command)
        except ExternalCommandError as e:
            return self._fail(result, ExitCode.VALIDATION_FAILED, str(e))
        result.steps_completed.append('validate')

        try:
            self._run_step('reload', self.settings.reload_command)
        except ExternalCommandError as e:
            return self._fail(result, ExitCode.RELOAD_FAILED, str(e))
        self.logger.info("Nginx 重新加载成功")
        result.steps_completed.append('reload')

        if not ssl:
            self.logger.info("跳过证书签发")
            return result

        try:
            self.issue_certificate(domain, email)
        except ExternalCommandError as e:
            return self._fail(result, ExitCode.CERTIFICATE_FAILED, str(e))
        result.steps_completed.append('issue_certificate')

        return result

    def write_config(self, domain: str, port: int) -> str:
        """
        写入配置文件，已存在时发出警告并覆盖

        Returns:
            str: 配置文件路径

        Raises:
            FileSystemError: 写入失败
        """
        config_path = self.config_path_for(domain)
        self.logger.info(f"为 {domain} 创建 Nginx 配置 -> {self.settings.upstream_host}:{port}")

        if os.path.exists(config_path):
            self.logger.warning(f"配置文件已存在: {config_path}，将被覆盖")

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                f.write(render_config(domain, port, self.settings.upstream_host))
        except OSError as e:
            raise FileSystemError(f"写入配置文件失败 {config_path}: {e}", path=config_path) from e

        self.logger.info(f"Nginx 配置已创建: {config_path}")
        return config_path

    def enable_config(self, domain: str):
        """
        启用配置

        Raises:
            FileSystemError: 创建软链接失败
        """
        if not self.settings.enabled_dir:
            self.logger.info("配置文件位于自动加载目录，无需创建软链接")
            return

        config_path = self.config_path_for(domain)
        link_path = os.path.join(self.settings.enabled_dir, f"{domain}.conf")

        try:
            if os.path.islink(link_path) or os.path.exists(link_path):
                self.logger.info(f"删除已存在的链接: {link_path}")
                os.remove(link_path)
            os.symlink(config_path, link_path)
        except OSError as e:
            raise FileSystemError(f"启用配置失败 {link_path}: {e}", path=link_path) from e

        self.logger.info(f"已启用配置: {link_path} -> {config_path}")

    def issue_certificate(self, domain: str, email: Optional[str] = None):
        """
        使用 certbot 非交互方式签发证书并强制 HTTPS 跳转

        Raises:
            ExternalCommandError: certbot 执行失败
        """
        self.logger.info(f"为 {domain} 申请 SSL 证书")
        self._run_step('issue_certificate', self.build_certbot_command(domain, email))
        self.logger.info(f"SSL 证书已为 {domain} 安装成功")

    def build_certbot_command(self, domain: str, email: Optional[str] = None) -> List[str]:
        email_args = ['--email', email] if email else ['--register-unsafely-without-email']
        return [
            self.settings.certbot_binary, '--nginx',
            '-d', domain,
            *email_args,
            '--agree-tos',
            '--redirect',
            '--non-interactive'
        ]

    def _run_step(self, step: str, command):
        try:
            return self.runner.run(command, timeout=self.settings.command_timeout)
        except ExternalCommandError as e:
            self.error_handler.handle_command_error(step, e)
            raise

    def _fail(self, result: ProvisionResult, exit_code: ExitCode, error: str) -> ProvisionResult:
        self.logger.error(error)
        result.exit_code = exit_code
        result.error = error
        return result


def is_root() -> bool:
    geteuid = getattr(os, 'geteuid', None)
    return geteuid is not None and geteuid() == 0


def _port(value: str) -> int:
    port = int(value)
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {value}")
    return port


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssl-renewer-provision",
        description="Create an nginx reverse-proxy config for a domain and issue a certificate."
    )
    parser.add_argument("-d", "--domain", required=True, help="domain name for the nginx config")
    parser.add_argument("-p", "--port", required=True, type=_port, help="local port to proxy to")
    parser.add_argument("--ssl", dest="ssl", action="store_true", default=True,
                        help="issue a certificate with certbot (default)")
    parser.add_argument("--no-ssl", dest="ssl", action="store_false", help="skip certificate issuance")
    parser.add_argument("--email", help="email for Let's Encrypt notifications")
    parser.add_argument("--config-dir", default=ProvisionerSettings.config_dir)
    parser.add_argument("--enabled-dir", default=ProvisionerSettings.enabled_dir,
                        help="symlink the config into this directory (sites-enabled layout)")
    parser.add_argument("--upstream-host", default=ProvisionerSettings.upstream_host)
    parser.add_argument("--timeout", type=float, default=ProvisionerSettings.command_timeout,
                        help="timeout in seconds for each external command")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    命令行入口

    Returns:
        int: 退出码，0 表示全部成功
    """
    args = build_arg_parser().parse_args(argv)
    logger = LoggerService().logger

    if not is_root():
        logger.warning("当前不是 root 用户，修改 Nginx 配置可能需要 root 权限")
        logger.warning(f"可以尝试: sudo ssl-renewer-provision --domain {args.domain} --port {args.port}")

    settings = ProvisionerSettings(
        config_dir=args.config_dir,
        enabled_dir=args.enabled_dir,
        upstream_host=args.upstream_host,
        command_timeout=args.timeout
    )
    result = NginxProvisioner(settings).provision(args.domain, args.port, ssl=args.ssl, email=args.email)

    return int(result.exit_code)


if __name__ == "__main__":
    sys.exit(main())
