"""Reachability checks for cluster API servers.

Used by the external probe to confirm a managed cluster's API server
answers at all, and to write the kubeconfig files oc runs against.
"""

import tempfile
from typing import Optional

import requests
import urllib3
import yaml

# Suppress SSL warnings for self-signed certs
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


def _named_entries(entries, key: str) -> dict:
    """Map name -> entries[i][key] for a kubeconfig list, skipping malformed items."""
    if not isinstance(entries, list):
        return {}
    named = {}
    for entry in entries:
        if isinstance(entry, dict) and isinstance(entry.get(key), dict):
            named[entry.get('name')] = entry[key]
    return named


def api_server_from_kubeconfig(kubeconfig: str) -> Optional[str]:
    """Extract the current context's API server URL from kubeconfig text."""
    try:
        data = yaml.safe_load(kubeconfig) or {}
    except yaml.YAMLError:
        return None
    if not isinstance(data, dict):
        return None
    clusters = _named_entries(data.get('clusters'), 'cluster')
    contexts = _named_entries(data.get('contexts'), 'context')
    context = contexts.get(data.get('current-context'), {})
    cluster = clusters.get(context.get('cluster'))
    if cluster is None and clusters:
        cluster = next(iter(clusters.values()))
    server = (cluster or {}).get('server')
    return server if isinstance(server, str) else None


def validate_api_server(api_server: str, timeout: float = 10) -> tuple[bool, str]:
    """Check a Kubernetes API server answers its /readyz endpoint.

    Any HTTP answer (including 401/403 for anonymous requests) proves the
    server is reachable; only transport failures count as unreachable.

    Args:
        api_server: API URL (e.g., https://api.ocp-01.example.com:6443)
        timeout: Request timeout in seconds

    Returns:
        (success, message) tuple
    """
    try:
        resp = requests.get(
            f"{api_server.rstrip('/')}/readyz",
            verify=False,  # Self-signed cert
            timeout=timeout
        )

        if resp.status_code == 200:
            return True, f"API server {api_server} ready"

        if resp.status_code in (401, 403):
            return True, f"API server {api_server} reachable (HTTP {resp.status_code})"

        return False, f"Unexpected API response: {resp.status_code} - {resp.text[:100]}"

    except requests.exceptions.ConnectionError as e:
        return False, f"Cannot connect to {api_server}: {e}"
    except requests.exceptions.Timeout:
        return False, f"Timeout connecting to {api_server}"
    except requests.exceptions.RequestException as e:
        return False, f"Error checking {api_server}: {e}"


def validate_kubeconfig(kubeconfig: str, timeout: float = 10) -> tuple[bool, str]:
    """Connectivity check for the API server a kubeconfig points at."""
    server = api_server_from_kubeconfig(kubeconfig)
    if not server:
        return False, "Kubeconfig has no cluster server URL"
    return validate_api_server(server, timeout=timeout)


def write_kubeconfig(kubeconfig: str) -> str:
    """Persist kubeconfig text to a private temp file and return its path.

    Callers are responsible for removing the file.
    """
    with tempfile.NamedTemporaryFile('w', prefix='kubeconfig-', suffix='.yaml', delete=False, encoding='utf-8') as f:
        f.write(kubeconfig)
        return f.name
