"""Shared pytest fixtures for cluster-bootstrap tests."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

INDEX_TEMPLATE = """apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
resources:
  - hub-infrastructure.yaml
  # cluster-applications
  - existing-01.yaml
"""


@pytest.fixture
def repo(tmp_path):
    """Temporary bootstrap repository with regions/ and a GitOps index."""
    root = tmp_path / 'bootstrap'
    (root / 'regions').mkdir(parents=True)
    (root / 'gitops-applications').mkdir()
    (root / 'gitops-applications' / 'kustomization.yaml').write_text(INDEX_TEMPLATE)
    return root


@pytest.fixture
def config(repo):
    """BootstrapConfig for the temporary repository."""
    from config import BootstrapConfig
    return BootstrapConfig(repo_dir=repo)


@pytest.fixture
def write_spec(repo):
    """Factory writing regions/<region>/<name>/region.yaml."""
    def _write(data: dict, region: str = 'us-west-2', root: Path = None) -> Path:
        base = (root or repo / 'regions') / region / data['name']
        base.mkdir(parents=True, exist_ok=True)
        path = base / 'region.yaml'
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path
    return _write


@pytest.fixture
def mock_hub():
    """HubClient double with an empty, reachable hub."""
    hub = MagicMock()
    hub.oc_binary = 'oc'
    hub.timeout = 60
    hub.list.return_value = []
    hub.exists.return_value = False
    hub.check.return_value = (True, 'Hub API reachable')
    hub.delete.return_value = ''
    return hub


def managed_cluster(name, available='True', finalizers=None, taints=None):
    """ManagedCluster JSON as returned by oc get -o json."""
    return {
        'metadata': {'name': name, 'finalizers': finalizers or []},
        'spec': {'taints': taints or []},
        'status': {'conditions': [{'type': 'ManagedClusterConditionAvailable', 'status': available}]},
    }


def application(name, cluster=None, wave=None, sync='Synced', deleting=False):
    """ArgoCD Application JSON."""
    meta = {'name': name, 'labels': {}, 'annotations': {}}
    if cluster:
        meta['labels']['cluster'] = cluster
    if wave is not None:
        meta['annotations']['argocd.argoproj.io/sync-wave'] = str(wave)
    if deleting:
        meta['deletionTimestamp'] = '2026-01-01T00:00:00Z'
    return {'metadata': meta, 'status': {'sync': {'status': sync}}}
