"""Hub and managed-cluster API access through the oc CLI.

Every call goes through common.run_command with `-o json` output, so the
tool needs nothing beyond a logged-in oc (or a kubeconfig) to talk to a
cluster. Failures are mapped onto the error taxonomy:

- NotFound                            -> NotFoundError
- connection refused / timeouts       -> ConnectivityError
- anything else with a non-zero exit  -> HubCommandError
"""

import base64
import json
import logging
import os
from typing import Optional

from common import run_command
from errors import ConnectivityError, HubCommandError, NotFoundError

logger = logging.getLogger(__name__)

# Fragments of oc stderr meaning the API server could not be reached
CONNECTIVITY_MARKERS = (
    'unable to connect to the server',
    'connection refused',
    'no such host',
    'i/o timeout',
    'tls handshake timeout',
    'the server is currently unable to handle the request',
    'was refused - did you specify the right host or port',
)

NOT_FOUND_MARKERS = ('(notfound)', 'not found')

KUBECONFIG_SECRET_KEYS = ('kubeconfig', 'value')


class HubClient:
    """Thin wrapper around `oc` for one cluster (hub or managed).

    Attributes:
        oc_binary: oc executable
        kubeconfig: Kubeconfig path passed via KUBECONFIG (None = oc default)
        timeout: Per-command timeout in seconds
    """

    def __init__(self, oc_binary: str = 'oc', kubeconfig: Optional[str] = None, timeout: int = 60):
        self.oc_binary = oc_binary
        self.kubeconfig = kubeconfig
        self.timeout = timeout

    def _env(self) -> Optional[dict]:
        if not self.kubeconfig:
            return None
        env = os.environ.copy()
        env['KUBECONFIG'] = self.kubeconfig
        return env

    def raw(self, args: list[str], timeout: Optional[int] = None, input_text: Optional[str] = None) -> str:
        """Run `oc <args>` and return stdout, raising on failure."""
        cmd = [self.oc_binary, *args]
        rc, out, err = run_command(cmd, timeout=timeout or self.timeout, env=self._env(), input_text=input_text)
        if rc == 0:
            return out
        message = (err or out).strip()
        lowered = message.lower()
        if rc == -1 or rc == 127 or any(marker in lowered for marker in CONNECTIVITY_MARKERS):
            raise ConnectivityError(message or f"{self.oc_binary} failed with exit code {rc}")
        if any(marker in lowered for marker in NOT_FOUND_MARKERS):
            raise NotFoundError(message)
        raise HubCommandError(f"{' '.join(args[:3])}: {message or f'exit code {rc}'}")

    def _json(self, args: list[str], timeout: Optional[int] = None) -> dict:
        out = self.raw([*args, '-o', 'json'], timeout=timeout)
        try:
            return json.loads(out) if out.strip() else {}
        except json.JSONDecodeError as e:
            raise HubCommandError(f"Invalid JSON from {self.oc_binary} {' '.join(args[:3])}: {e}") from e

    @staticmethod
    def _scope(namespace: Optional[str]) -> list[str]:
        return ['-n', namespace] if namespace else []

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> dict:
        """Fetch one resource. Raises NotFoundError if absent."""
        return self._json(['get', kind, name, *self._scope(namespace)])

    def exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        try:
            self.get(kind, name, namespace)
        except NotFoundError:
            return False
        return True

    def list(self, kind: str, namespace: Optional[str] = None, selector: Optional[str] = None,
             all_namespaces: bool = False) -> list[dict]:
        """List resources of a kind. A kind the server does not know yields []."""
        args = ['get', kind]
        if all_namespaces:
            args.append('-A')
        else:
            args.extend(self._scope(namespace))
        if selector:
            args.extend(['-l', selector])
        try:
            return self._json(args).get('items', [])
        except NotFoundError:
            return []
        except HubCommandError as e:
            if "doesn't have a resource type" in str(e):
                logger.debug(f"Resource type {kind} not served: {e}")
                return []
            raise

    def delete(self, kind: str, name: Optional[str] = None, namespace: Optional[str] = None,
               selector: Optional[str] = None, wait: bool = False, timeout: Optional[int] = None) -> str:
        """Delete by name or label selector. Missing resources are not an error."""
        args = ['delete', kind]
        if name:
            args.append(name)
        args.extend(self._scope(namespace))
        if selector:
            args.extend(['-l', selector])
        args.extend(['--ignore-not-found', f'--wait={str(wait).lower()}'])
        if wait and timeout:
            args.append(f'--timeout={timeout}s')
        return self.raw(args, timeout=(timeout or self.timeout) + 30 if wait else None).strip()

    def replace_raw(self, path: str, body: dict) -> str:
        """PUT a raw API path (used for the namespace finalize subresource)."""
        return self.raw(['replace', '--raw', path, '-f', '-'], input_text=json.dumps(body)).strip()

    def secret_data(self, name: str, namespace: str) -> dict[str, str]:
        """Decoded data of a Secret."""
        secret = self.get('secret', name, namespace)
        return {
            key: base64.b64decode(value).decode('utf-8', errors='replace')
            for key, value in (secret.get('data') or {}).items()
        }

    def check(self) -> tuple[bool, str]:
        """Verify the API server answers. Returns (success, message)."""
        try:
            out = self.raw(['whoami', '--show-server'], timeout=min(self.timeout, 30))
        except (ConnectivityError, HubCommandError) as e:
            return False, f"Hub API unreachable: {e}"
        return True, f"Hub API reachable ({out.strip() or 'unknown server'})"

    def kubeconfig_for(self, cluster_name: str) -> str:
        """Admin kubeconfig for a managed cluster, read from the hub.

        Looks in namespace <name> for <name>-admin-kubeconfig, then
        <name>-kubeconfig; the kubeconfig is under key `kubeconfig` or `value`.

        Raises:
            NotFoundError: If no such secret (or key) exists
        """
        for secret_name in (f'{cluster_name}-admin-kubeconfig', f'{cluster_name}-kubeconfig'):
            try:
                data = self.secret_data(secret_name, cluster_name)
            except NotFoundError:
                continue
            for key in KUBECONFIG_SECRET_KEYS:
                if data.get(key):
                    logger.debug(f"Using {cluster_name}/{secret_name}[{key}] for managed cluster access")
                    return data[key]
        raise NotFoundError(f"No admin kubeconfig secret for {cluster_name}")
