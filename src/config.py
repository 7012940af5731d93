"""Tool configuration management.

Configuration is loaded from the GitOps repository being managed:
- .bootstrap.yaml: Optional overrides (repo URL, gitops namespace, oc binary, ...)
- regions/<region>/<cluster>/region.yaml: Regional cluster specs (see regional_spec)

Resolution order for the repository root:
1. --repo command line flag
2. $BOOTSTRAP_REPO environment variable
3. Nearest ancestor of the working directory holding regions/ or gitops-applications/

Environment overrides applied last: KUBECONFIG, BOOTSTRAP_OC.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from errors import ConfigError

CONFIG_FILENAME = '.bootstrap.yaml'

# Directories that mark a checkout as a bootstrap repository
REPO_MARKERS = ('regions', 'gitops-applications')


@dataclass
class BootstrapConfig:
    """Settings for one bootstrap repository and its hub cluster.

    Attributes:
        repo_dir: Root of the GitOps repository
        repo_url: Git URL ArgoCD pulls generated manifests from
        target_revision: Branch/tag ArgoCD tracks
        gitops_namespace: Namespace holding ApplicationSets/Applications on the hub
        oc_binary: CLI used for hub and managed-cluster API access
        kubeconfig: Hub kubeconfig path (None = oc default)
        gitea_remote: Git remote used by --push-to-gitea
        gitea_branch: Branch pushed by --push-to-gitea
        secret_store: ClusterSecretStore referenced by generated ExternalSecrets
        hub_cluster_name: Hub's own ManagedCluster entry (excluded from status)
    """
    repo_dir: Path
    repo_url: str = 'https://github.com/openshift-online/bootstrap'
    target_revision: str = 'main'
    gitops_namespace: str = 'openshift-gitops'
    oc_binary: str = 'oc'
    kubeconfig: Optional[str] = None
    gitea_remote: str = 'gitea'
    gitea_branch: str = 'main'
    secret_store: str = 'vault-cluster-store'
    hub_cluster_name: str = 'local-cluster'

    def __post_init__(self):
        if isinstance(self.repo_dir, str):
            self.repo_dir = Path(self.repo_dir)

    @property
    def regions_dir(self) -> Path:
        return self.repo_dir / 'regions'

    @property
    def clusters_dir(self) -> Path:
        return self.repo_dir / 'clusters'

    @property
    def gitops_dir(self) -> Path:
        return self.repo_dir / 'gitops-applications'

    @property
    def index_file(self) -> Path:
        """Shared GitOps index listing every cluster ApplicationSet."""
        return self.gitops_dir / 'kustomization.yaml'


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")
    return data


def find_repo_dir(start: Optional[Path] = None) -> Path:
    """Discover the bootstrap repository root.

    Resolution order:
    1. $BOOTSTRAP_REPO environment variable
    2. Nearest ancestor of start (default: cwd) holding a repo marker directory
    """
    if env_path := os.environ.get('BOOTSTRAP_REPO'):
        path = Path(env_path)
        if path.is_dir():
            return path
        raise ConfigError(f"BOOTSTRAP_REPO={env_path} does not exist")

    current = (start or Path.cwd()).resolve()
    for candidate in [current, *current.parents]:
        if any((candidate / marker).is_dir() for marker in REPO_MARKERS):
            return candidate

    raise ConfigError(
        "Bootstrap repository not found. "
        "Run from inside the repository, set BOOTSTRAP_REPO, or pass --repo."
    )


def load_config(repo_dir: Optional[Path] = None) -> BootstrapConfig:
    """Load configuration for a repository.

    Merge order: dataclass defaults -> .bootstrap.yaml -> environment.
    """
    repo = Path(repo_dir) if repo_dir else find_repo_dir()
    if not repo.is_dir():
        raise ConfigError(f"Repository directory does not exist: {repo}")

    overrides = {}
    config_file = repo / CONFIG_FILENAME
    if config_file.exists():
        overrides = _parse_yaml(config_file)

    known = {f.name for f in fields(BootstrapConfig)} - {'repo_dir'}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s) in {config_file}: {', '.join(unknown)}")

    config = BootstrapConfig(repo_dir=repo, **overrides)

    if kubeconfig := os.environ.get('KUBECONFIG'):
        config.kubeconfig = kubeconfig
    if oc_binary := os.environ.get('BOOTSTRAP_OC'):
        config.oc_binary = oc_binary

    return config
