"""Pull the shared SSH key and repo mapping from AWS Secrets Manager / SSM."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from .config import AgentctlSettings
from .errors import AgentctlError, RemoteConfigError, UsageError
from .runner import CommandRunner

logger = logging.getLogger(__name__)

IMDS_BASE = "http://169.254.169.254/latest"
IMDS_TIMEOUT = 2.0
SSH_HOST = "bitbucket.org"
SSH_CONFIG_BLOCK = f"Host {SSH_HOST}\n  IdentityFile ~/.ssh/id_ed25519\n  IdentitiesOnly yes\n"


def secret_id_for(config_name: str) -> str:
    return f"agent-host/{config_name}/bitbucket_ssh_private_key"


def parameter_name_for(config_name: str) -> str:
    return f"/agent-host/{config_name}/agentctl/repos_txt"


@dataclass(slots=True)
class SyncResult:
    config_name: str
    region: str
    key_path: Path
    repo_file: Path
    secret_id: str
    parameter_name: str


def instance_region(session: requests.Session | None = None) -> str | None:
    """Region from the EC2 instance identity document, or None off-EC2."""

    http = session or requests.Session()
    headers: dict[str, str] = {}
    try:
        token = http.put(
            f"{IMDS_BASE}/api/token",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": "60"},
            timeout=IMDS_TIMEOUT,
        )
        if token.ok:
            headers["X-aws-ec2-metadata-token"] = token.text
        document = http.get(
            f"{IMDS_BASE}/dynamic/instance-identity/document", headers=headers, timeout=IMDS_TIMEOUT
        )
        document.raise_for_status()
        return document.json().get("region")
    except (requests.RequestException, ValueError) as exc:
        logger.debug("instance metadata unavailable: %s", exc)
        return None


class RemoteConfigSync:
    """Writes the SSH key, ssh config, known_hosts and repo mapping for a named host config."""

    def __init__(
        self,
        settings: AgentctlSettings,
        *,
        client_factory: Callable[[str, str], Any] | None = None,
        runner: CommandRunner | None = None,
        region_lookup: Callable[[], str | None] = instance_region,
    ) -> None:
        self.settings = settings
        self._client_factory = client_factory or (
            lambda service, region: boto3.client(service, region_name=region)
        )
        self._runner = runner or CommandRunner()
        self._region_lookup = region_lookup

    def resolve_config_name(self, explicit: str | None) -> str:
        if explicit:
            return explicit
        name_file = self.settings.remote_config_name_file
        if name_file.is_file():
            remembered = "".join(name_file.read_text(encoding="utf-8").split())
            if remembered:
                return remembered
        if self.settings.host_config_name:
            return self.settings.host_config_name
        raise UsageError("Missing config name. Provide one: agentctl sync-config <config_name>")

    def resolve_region(self, explicit: str | None) -> str:
        region = (
            explicit
            or os.environ.get("AWS_REGION")
            or os.environ.get("AWS_DEFAULT_REGION")
            or self._region_lookup()
        )
        if not region:
            raise RemoteConfigError("Could not detect AWS region (pass --region or set AWS_REGION).")
        return region

    def sync(self, config_name: str | None = None, region: str | None = None) -> SyncResult:
        name = self.resolve_config_name(config_name)
        resolved_region = self.resolve_region(region)
        secret_id = secret_id_for(name)
        parameter_name = parameter_name_for(name)
        logger.info("Syncing remote config: name=%s region=%s", name, resolved_region)

        ssh_dir = self.settings.ssh_dir
        ssh_dir.mkdir(parents=True, exist_ok=True)
        ssh_dir.chmod(0o700)
        self.settings.config_dir.mkdir(parents=True, exist_ok=True)

        try:
            secrets = self._client_factory("secretsmanager", resolved_region)
            key_bytes = self._fetch_key(secrets, secret_id)
            ssm = self._client_factory("ssm", resolved_region)
            response = ssm.get_parameter(Name=parameter_name, WithDecryption=True)
        except (ClientError, BotoCoreError) as exc:
            raise RemoteConfigError(f"AWS request failed: {exc}") from exc

        key_path = ssh_dir / "id_ed25519"
        key_path.touch(mode=0o600, exist_ok=True)
        key_path.chmod(0o600)
        key_path.write_bytes(key_bytes)
        self._ensure_ssh_config(ssh_dir / "config")
        self._seed_known_hosts(ssh_dir / "known_hosts")

        repo_file = self.settings.repo_file
        repo_file.parent.mkdir(parents=True, exist_ok=True)
        repo_file.write_text(response["Parameter"]["Value"].rstrip("\n") + "\n", encoding="utf-8")
        repo_file.chmod(0o644)

        name_file = self.settings.remote_config_name_file
        name_file.write_text(name + "\n", encoding="utf-8")
        name_file.chmod(0o644)

        return SyncResult(name, resolved_region, key_path, repo_file, secret_id, parameter_name)

    @staticmethod
    def _fetch_key(client: Any, secret_id: str) -> bytes:
        response = client.get_secret_value(SecretId=secret_id)
        binary = response.get("SecretBinary")
        if binary:
            return binary if isinstance(binary, bytes) else bytes(binary)
        secret = response.get("SecretString")
        if not secret:
            raise RemoteConfigError(f"Failed to read secret: {secret_id}")
        return (secret.rstrip("\n") + "\n").encode("utf-8")

    @staticmethod
    def _ensure_ssh_config(path: Path) -> None:
        existing = path.read_text(encoding="utf-8") if path.is_file() else ""
        if f"Host {SSH_HOST}" in existing.splitlines():
            return
        separator = "" if not existing or existing.endswith("\n") else "\n"
        path.write_text(existing + separator + SSH_CONFIG_BLOCK, encoding="utf-8")
        path.chmod(0o600)

    def _seed_known_hosts(self, path: Path) -> None:
        try:
            if self._runner.run("ssh-keygen", "-F", SSH_HOST, "-f", str(path)).ok:
                return
            scan = self._runner.run("ssh-keyscan", "-t", "rsa,ed25519", SSH_HOST, timeout=15)
        except AgentctlError as exc:
            logger.warning("could not seed known_hosts: %s", exc)
            return
        if not scan.ok or not scan.stdout.strip():
            logger.warning("ssh-keyscan %s failed: %s", SSH_HOST, scan.stderr.strip())
            return
        with path.open("a", encoding="utf-8") as handle:
            handle.write(scan.stdout if scan.stdout.endswith("\n") else scan.stdout + "\n")
        path.chmod(0o644)


__all__ = ["RemoteConfigSync", "SyncResult", "instance_region", "parameter_name_for", "secret_id_for"]
