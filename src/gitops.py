"""GitOps registration: per-cluster ApplicationSet and the shared index.

Every cluster gets gitops-applications/<name>.yaml, an ApplicationSet
with five list-generator elements applied in sync-wave order:

    cluster (1) -> operators (2) -> pipelines-hello-world (3),
    pipelines-cloud-infra (3) -> deployments-ocm (4)

The shared index (gitops-applications/kustomization.yaml) lists every
ApplicationSet file. It is global mutable state: RepositoryIndex does a
plain read-modify-write with no locking, so callers must serialize
registrar/remover invocations against one index file.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from compiler import OVERLAY_DIRS
from generators import ManifestFile, dump_documents
from generators.fragments import CLUSTER_LABEL, KUSTOMIZE_API_VERSION

logger = logging.getLogger(__name__)

INDEX_MARKER = '# cluster-applications'

HUB_DESTINATION = 'https://kubernetes.default.svc'


@dataclass(frozen=True)
class Component:
    """One ApplicationSet list element."""
    name: str
    path_template: str
    sync_wave: int
    on_hub: bool = False

    def element(self, cluster_name: str) -> dict:
        return {
            'component': self.name,
            'path': self.path_template.format(name=cluster_name),
            'destination': HUB_DESTINATION if self.on_hub else cluster_name,
            'syncWave': str(self.sync_wave),
        }


COMPONENTS = (
    Component('cluster', 'clusters/{name}', 1, on_hub=True),
    Component('operators', OVERLAY_DIRS['operators'] + '/{name}', 2),
    Component('pipelines-hello-world', OVERLAY_DIRS['pipelines-hello-world'] + '/{name}', 3),
    Component('pipelines-cloud-infra', OVERLAY_DIRS['pipelines-cloud-infra'] + '/{name}', 3),
    Component('deployments-ocm', OVERLAY_DIRS['deployments-ocm'] + '/{name}', 4),
)

COMPONENT_NAMES = tuple(c.name for c in COMPONENTS)


def application_set_name(cluster_name: str) -> str:
    return f'{cluster_name}-applications'


def application_name(cluster_name: str, component: str) -> str:
    return f'{cluster_name}-{component}'


def entry_filename(cluster_name: str) -> str:
    return f'{cluster_name}.yaml'


def build_application_set(
    cluster_name: str,
    repo_url: str,
    target_revision: str = 'main',
    namespace: str = 'openshift-gitops',
) -> dict:
    """ApplicationSet generating one Application per component."""
    return {
        'apiVersion': 'argoproj.io/v1alpha1',
        'kind': 'ApplicationSet',
        'metadata': {
            'name': application_set_name(cluster_name),
            'namespace': namespace,
            'labels': {CLUSTER_LABEL: cluster_name},
        },
        'spec': {
            'generators': [
                {'list': {'elements': [c.element(cluster_name) for c in COMPONENTS]}},
            ],
            'template': {
                'metadata': {
                    'name': f'{cluster_name}-{{{{component}}}}',
                    'namespace': namespace,
                    'labels': {CLUSTER_LABEL: cluster_name},
                    'annotations': {'argocd.argoproj.io/sync-wave': '{{syncWave}}'},
                },
                'spec': {
                    'project': 'default',
                    'source': {
                        'repoURL': repo_url,
                        'path': '{{path}}',
                        'targetRevision': target_revision,
                    },
                    'destination': {'server': '{{destination}}'},
                    'syncPolicy': {
                        'automated': {'selfHeal': True, 'allowEmpty': False, 'prune': False},
                    },
                },
            },
        },
    }


class RepositoryIndex:
    """Read-modify-write access to the shared GitOps index file.

    Entries are list items (`- <name>.yaml`) under the resources: list.
    New entries go immediately after the INDEX_MARKER line; existing
    entries are never reordered. Not safe under concurrent writers.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        return self.path.read_text(encoding='utf-8').splitlines()

    def _write_lines(self, lines: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix='.index-', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write('\n'.join(lines) + '\n')
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    @staticmethod
    def _entry(filename: str) -> str:
        return f'- {filename}'

    def entries(self) -> list[str]:
        """Filenames listed in the index, in file order."""
        return [
            line.strip()[2:].strip()
            for line in self._read_lines()
            if line.strip().startswith('- ')
        ]

    def contains(self, filename: str) -> bool:
        entry = self._entry(filename)
        return any(line.strip() == entry for line in self._read_lines())

    def insert(self, filename: str) -> bool:
        """Insert an entry after the marker. Returns False if already present."""
        lines = self._read_lines()
        entry = self._entry(filename)
        if any(line.strip() == entry for line in lines):
            logger.info(f"Index already lists {filename}")
            return False

        if not lines:
            logger.info(f"Creating GitOps index {self.path}")
            lines = [
                f'apiVersion: {KUSTOMIZE_API_VERSION}',
                'kind: Kustomization',
                'resources:',
                f'  {INDEX_MARKER}',
                f'  {entry}',
            ]
            self._write_lines(lines)
            return True

        marker_at = next((i for i, line in enumerate(lines) if line.strip() == INDEX_MARKER), None)
        if marker_at is None:
            logger.warning(f"Marker '{INDEX_MARKER}' not found in {self.path}; appending {filename} at end of file")
            lines.append(f'  {entry}')
        else:
            indent = lines[marker_at][:len(lines[marker_at]) - len(lines[marker_at].lstrip())]
            lines.insert(marker_at + 1, f'{indent}{entry}')
        self._write_lines(lines)
        logger.info(f"Added {filename} to {self.path.name}")
        return True

    def remove(self, filename: str) -> bool:
        """Remove an entry. Returns False if it was not listed."""
        lines = self._read_lines()
        entry = self._entry(filename)
        kept = [line for line in lines if line.strip() != entry]
        if len(kept) == len(lines):
            return False
        self._write_lines(kept)
        logger.info(f"Removed {filename} from {self.path.name}")
        return True


class GitOpsRegistrar:
    """Emits per-cluster ApplicationSets and registers them in the index."""

    def __init__(self, gitops_dir: Path, repo_url: str, target_revision: str = 'main',
                 namespace: str = 'openshift-gitops', index: Optional[RepositoryIndex] = None):
        self.gitops_dir = Path(gitops_dir)
        self.repo_url = repo_url
        self.target_revision = target_revision
        self.namespace = namespace
        self.index = index or RepositoryIndex(self.gitops_dir / 'kustomization.yaml')

    def entry_file(self, cluster_name: str) -> ManifestFile:
        return ManifestFile(
            f'gitops-applications/{entry_filename(cluster_name)}',
            [build_application_set(cluster_name, self.repo_url, self.target_revision, self.namespace)],
        )

    def register(self, cluster_name: str) -> Path:
        """Write the ApplicationSet file and insert it into the index (idempotent)."""
        entry = self.entry_file(cluster_name)
        path = self.gitops_dir / entry.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(dump_documents(entry.documents))
        logger.info(f"Wrote {path}")
        self.index.insert(entry.filename)
        return path

    def unregister(self, cluster_name: str) -> bool:
        """Remove the cluster's line from the index. The entry file is left alone."""
        return self.index.remove(entry_filename(cluster_name))
