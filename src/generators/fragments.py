"""Resource fragments shared by every generator.

Namespace, ACM registration (ManagedCluster, KlusterletAddonConfig),
ExternalSecret and Kustomization builders. All builders are pure and
parameterized by cluster name/region only, so every backend registers
with ACM the same way.
"""

from typing import Optional

from regional_spec import ClusterType

# Label carried by every generated resource and by GitOps Applications
CLUSTER_LABEL = 'cluster'

KUSTOMIZE_API_VERSION = 'kustomize.config.k8s.io/v1beta1'

VENDORS = {
    ClusterType.OCP: 'OpenShift',
    ClusterType.EKS: 'EKS',
    ClusterType.HCP: 'OpenShift',
}


def cluster_labels(name: str, region: str, cluster_type: ClusterType) -> dict:
    """ACM placement labels for a cluster."""
    return {
        'name': name,
        'cloud': 'Amazon',
        'region': region,
        'vendor': VENDORS[cluster_type],
        'cluster.open-cluster-management.io/clusterset': 'default',
    }


def namespace(name: str) -> dict:
    return {
        'apiVersion': 'v1',
        'kind': 'Namespace',
        'metadata': {
            'name': name,
            'labels': {CLUSTER_LABEL: name},
        },
    }


def managed_cluster(name: str, region: str, cluster_type: ClusterType) -> dict:
    """ACM ManagedCluster (cluster-scoped) registering the cluster with the hub."""
    return {
        'apiVersion': 'cluster.open-cluster-management.io/v1',
        'kind': 'ManagedCluster',
        'metadata': {
            'name': name,
            'labels': cluster_labels(name, region, cluster_type),
        },
        'spec': {
            'hubAcceptsClient': True,
            'leaseDurationSeconds': 60,
        },
    }


def klusterlet_addon_config(name: str, region: str, cluster_type: ClusterType) -> dict:
    """KlusterletAddonConfig enabling the standard ACM add-ons."""
    return {
        'apiVersion': 'agent.open-cluster-management.io/v1',
        'kind': 'KlusterletAddonConfig',
        'metadata': {
            'name': name,
            'namespace': name,
        },
        'spec': {
            'clusterName': name,
            'clusterNamespace': name,
            'clusterLabels': {
                'cloud': 'Amazon',
                'region': region,
                'vendor': VENDORS[cluster_type],
            },
            'applicationManager': {'enabled': True},
            'certPolicyController': {'enabled': True},
            'policyController': {'enabled': True},
            'searchCollector': {'enabled': True},
        },
    }


def external_secret(
    name: str,
    namespace: str,
    secret_store: str,
    remote_key: str,
    data: dict[str, str],
    secret_type: Optional[str] = None,
) -> dict:
    """ExternalSecret materializing a hub Secret from the secret store.

    Args:
        data: Mapping of target secret key -> remote property
    """
    target: dict = {'name': name, 'creationPolicy': 'Owner'}
    if secret_type:
        target['template'] = {'type': secret_type}
    return {
        'apiVersion': 'external-secrets.io/v1beta1',
        'kind': 'ExternalSecret',
        'metadata': {
            'name': name,
            'namespace': namespace,
        },
        'spec': {
            'refreshInterval': '1h',
            'secretStoreRef': {'name': secret_store, 'kind': 'ClusterSecretStore'},
            'target': target,
            'data': [
                {'secretKey': key, 'remoteRef': {'key': remote_key, 'property': prop}}
                for key, prop in data.items()
            ],
        },
    }


def kustomization(
    resources: list[str],
    generator_files: Optional[dict[str, list[str]]] = None,
    patches: Optional[list[dict]] = None,
    namespace: Optional[str] = None,
    secret_namespace: Optional[str] = None,
) -> dict:
    """Kustomization listing every emitted file, name-suffix hashing disabled.

    Args:
        resources: Resource files and bases, in order
        generator_files: Secret name -> files fed through secretGenerator
        patches: Inline JSON6902 patches with targets
        namespace: Namespace transformer value (namespaced overlays only)
        secret_namespace: Namespace for generated secrets
    """
    doc: dict = {
        'apiVersion': KUSTOMIZE_API_VERSION,
        'kind': 'Kustomization',
    }
    if namespace:
        doc['namespace'] = namespace
    doc['resources'] = list(resources)
    if patches:
        doc['patches'] = patches
    if generator_files:
        generators = []
        for secret_name, files in generator_files.items():
            entry: dict = {'name': secret_name}
            if secret_namespace:
                entry['namespace'] = secret_namespace
            entry['files'] = list(files)
            entry['type'] = 'Opaque'
            generators.append(entry)
        doc['secretGenerator'] = generators
    # Downstream ApplicationSets reference fixed, unhashed names
    doc['generatorOptions'] = {'disableNameSuffixHash': True}
    return doc
