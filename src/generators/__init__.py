"""Manifest generators, one per cluster backend.

Each generator turns a RegionalSpec into the ordered set of files that
make up clusters/<name>/, finishing with a kustomization.yaml that lists
every emitted file.
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import yaml

from regional_spec import ClusterType, RegionalSpec


class _ManifestDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings (scripts) as block literals."""


def _str_presenter(dumper, data):
    if '\n' in data:
        return dumper.represent_scalar('tag:yaml.org,2002:str', data, style='|')
    return dumper.represent_scalar('tag:yaml.org,2002:str', data)


_ManifestDumper.add_representer(str, _str_presenter)


def dump_documents(documents: list[dict]) -> str:
    """Render documents as deterministic multi-document YAML."""
    return yaml.dump_all(
        documents,
        Dumper=_ManifestDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


@dataclass
class ManifestFile:
    """One file in the repository.

    Attributes:
        path: Repository-relative POSIX path
        documents: Resource documents, in file order
    """
    path: str
    documents: list[dict] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return self.path.rsplit('/', 1)[-1]

    def render(self) -> str:
        return dump_documents(self.documents)


@dataclass
class ClusterManifestSet:
    """All repository files generated for one cluster, in emission order."""
    cluster_name: str
    cluster_type: ClusterType
    files: list[ManifestFile] = field(default_factory=list)

    @property
    def cluster_dir(self) -> str:
        return f'clusters/{self.cluster_name}'

    @property
    def cluster_files(self) -> list[ManifestFile]:
        """Files under clusters/<name>/ (backend resources and kustomization)."""
        prefix = self.cluster_dir + '/'
        return [f for f in self.files if f.path.startswith(prefix)]

    def documents(self, cluster_only: bool = True) -> list[dict]:
        """Kubernetes resource documents (inputs such as install-config are skipped)."""
        files = self.cluster_files if cluster_only else self.files
        return [doc for f in files for doc in f.documents if 'kind' in doc]

    def by_key(self, cluster_only: bool = True) -> dict[tuple[str, str], dict]:
        """Documents keyed by (kind, name).

        Unnamed documents (kustomizations) are left out.
        """
        return {
            (doc['kind'], doc['metadata']['name']): doc
            for doc in self.documents(cluster_only)
            if (doc.get('metadata') or {}).get('name')
        }

    def kinds(self, cluster_only: bool = True) -> list[str]:
        return [doc['kind'] for doc in self.documents(cluster_only)]

    def get_file(self, path: str) -> ManifestFile:
        for f in self.files:
            if f.path == path:
                return f
        raise KeyError(path)

    def render(self) -> dict[str, str]:
        """Map of repository path to file content."""
        return {f.path: f.render() for f in self.files}


@dataclass(frozen=True)
class GeneratorSettings:
    """Repository-wide values generators need beyond the spec."""
    secret_store: str = 'vault-cluster-store'
    gitops_namespace: str = 'openshift-gitops'


@runtime_checkable
class ManifestGenerator(Protocol):
    """Protocol for backend manifest generators.

    Class attributes:
        cluster_type: The ClusterType this generator handles
    """
    cluster_type: ClusterType

    def generate(self, spec: RegionalSpec, settings: GeneratorSettings) -> list[ManifestFile]:
        """Return clusters/<name>/ files, kustomization.yaml last."""
        ...


# Registry of available generators
_generators: dict[ClusterType, type[ManifestGenerator]] = {}


def register_generator(cls: type[ManifestGenerator]) -> type[ManifestGenerator]:
    """Decorator to register a generator class."""
    _generators[cls.cluster_type] = cls
    return cls


def get_generator(cluster_type: ClusterType) -> ManifestGenerator:
    """Get a generator instance for a cluster type."""
    if cluster_type not in _generators:
        available = sorted(t.value for t in _generators)
        raise ValueError(f"No generator for type: {cluster_type}. Available: {available}")
    return _generators[cluster_type]()


def list_generators() -> list[str]:
    """List registered cluster types."""
    return sorted(t.value for t in _generators)


# Import generators to trigger registration
from generators import ocp  # noqa: E402, F401
from generators import eks  # noqa: E402, F401
from generators import hcp  # noqa: E402, F401
