#!/usr/bin/env python3
"""Tests for per-backend manifest generators and shared fragments."""

import pytest
import yaml

from generators import GeneratorSettings, get_generator, list_generators
from generators import eks_bootstrap, fragments, ocp
from compiler import ManifestCompiler
from regional_spec import ClusterType, RegionalSpec


def _spec(**overrides):
    data = {'name': 'eks-01', 'type': 'eks', 'region': 'us-west-2', 'replicas': 2}
    data.update(overrides)
    return RegionalSpec.from_dict(data)


class TestRegistry:
    """One generator per cluster type."""

    def test_all_types_registered(self):
        assert list_generators() == ['eks', 'hcp', 'ocp']

    def test_dispatch_by_type(self):
        for cluster_type in ClusterType:
            assert get_generator(cluster_type).cluster_type is cluster_type


class TestFragments:
    """Shared namespace/ACM fragments."""

    def test_managed_cluster_is_cluster_scoped(self):
        mc = fragments.managed_cluster('eks-01', 'us-west-2', ClusterType.EKS)
        assert 'namespace' not in mc['metadata']
        assert mc['metadata']['labels']['vendor'] == 'EKS'
        assert mc['metadata']['labels']['region'] == 'us-west-2'
        assert mc['spec']['hubAcceptsClient'] is True

    def test_klusterlet_addon_config_in_cluster_namespace(self):
        kac = fragments.klusterlet_addon_config('ocp-01', 'us-east-1', ClusterType.OCP)
        assert kac['metadata']['namespace'] == 'ocp-01'
        assert kac['spec']['clusterNamespace'] == 'ocp-01'
        assert kac['spec']['clusterLabels']['vendor'] == 'OpenShift'

    def test_kustomization_disables_name_suffix_hash(self):
        doc = fragments.kustomization(resources=['a.yaml'])
        assert doc['generatorOptions'] == {'disableNameSuffixHash': True}

    def test_external_secret_uses_cluster_store(self):
        es = fragments.external_secret('pull-secret', 'hcp-01', 'vault-cluster-store', 'pull-secret',
                                       {'.dockerconfigjson': 'dockerconfigjson'},
                                       secret_type='kubernetes.io/dockerconfigjson')
        assert es['spec']['secretStoreRef'] == {'name': 'vault-cluster-store', 'kind': 'ClusterSecretStore'}
        assert es['spec']['target']['template']['type'] == 'kubernetes.io/dockerconfigjson'


class TestEksGenerator:
    """CAPI resource graph plus ACM import pipeline."""

    def test_scenario_eks_01(self):
        """eks-01 compiles to exactly one of each CAPI resource, a namespace and a full kustomization."""
        manifest_set = ManifestCompiler().compile(_spec())
        kinds = manifest_set.kinds()

        for kind in ('Cluster', 'AWSManagedControlPlane', 'AWSManagedMachinePool', 'MachinePool'):
            assert kinds.count(kind) == 1, kind

        namespaces = [d for d in manifest_set.documents() if d['kind'] == 'Namespace']
        assert [n['metadata']['name'] for n in namespaces] == ['eks-01']

        kustomization = manifest_set.get_file('clusters/eks-01/kustomization.yaml').documents[0]
        listed = kustomization['resources']
        emitted = [f.filename for f in manifest_set.cluster_files if f.filename != 'kustomization.yaml']
        assert listed == emitted
        assert 'acm-import.pipeline.yaml' in listed

    def test_all_resources_in_cluster_namespace(self):
        manifest_set = ManifestCompiler().compile(_spec())
        for doc in manifest_set.documents():
            if doc['kind'] in ('Namespace', 'ManagedCluster', 'Kustomization'):
                continue
            assert doc['metadata']['namespace'] == 'eks-01', doc['kind']

    def test_version_and_scaling(self):
        manifest_set = ManifestCompiler().compile(_spec(version='v1.29'))
        docs = manifest_set.by_key()
        assert docs[('AWSManagedControlPlane', 'eks-01')]['spec']['version'] == 'v1.29.0'
        pool = docs[('AWSManagedMachinePool', 'eks-01-pool-0')]
        assert pool['spec']['scaling'] == {'minSize': 2, 'maxSize': 2}
        assert docs[('MachinePool', 'eks-01-pool-0')]['spec']['replicas'] == 2

    def test_machine_pool_links_infrastructure(self):
        docs = ManifestCompiler().compile(_spec()).by_key()
        ref = docs[('MachinePool', 'eks-01-pool-0')]['spec']['template']['spec']['infrastructureRef']
        assert ref['kind'] == 'AWSManagedMachinePool'
        assert ref['name'] == 'eks-01-pool-0'


@pytest.mark.parametrize('data,expected', [
    ({'name': 'eks-01', 'type': 'eks', 'replicas': 2},
     [('Namespace', 'eks-01'), ('ManagedCluster', 'eks-01'), ('Cluster', 'eks-01')]),
    ({'name': 'ocp-01', 'type': 'ocp', 'domain': 'example.com', 'version': '4.15.2'},
     [('Namespace', 'ocp-01')]),
    ({'name': 'hcp-01', 'type': 'hcp', 'domain': 'example.com', 'version': '4.15.2'},
     [('Namespace', 'hcp-01'), ('ManagedCluster', 'hcp-01'), ('HostedCluster', 'hcp-01')]),
])
def test_by_key_skips_unnamed_documents(data, expected):
    manifest_set = ManifestCompiler().compile(RegionalSpec.from_dict(data))
    keyed = manifest_set.by_key()
    for key in expected:
        assert key in keyed
    assert all(kind != 'Kustomization' for kind, _ in keyed)
    assert 'Kustomization' in manifest_set.kinds()


class TestEksBootstrapPipeline:
    """Task + PipelineRun importing the cluster into ACM."""

    def test_step_order(self):
        task = eks_bootstrap.task(_spec())
        names = [s['name'] for s in task['spec']['steps']]
        assert names == ['install-clis', 'wait-cluster-active', 'apply-acm-import',
                         'wait-nodes-ready', 'repair-pull-secret', 'check-acm-availability']

    def test_cluster_active_bounds(self):
        script = eks_bootstrap.wait_cluster_active_script()
        assert 'sleep 30' in script
        assert '-ge 1800' in script
        assert 'exit 1' in script

    def test_acm_availability_is_advisory(self):
        script = eks_bootstrap.check_acm_availability_script()
        assert 'sleep 30' in script
        assert '-ge 600' in script
        assert 'exit 1' not in script
        assert 'exit 0' in script

    def test_import_reads_hub_secret(self):
        script = eks_bootstrap.apply_acm_import_script()
        assert '"${CLUSTER}-import"' in script
        assert 'crds' in script and 'import' in script

    def test_pipeline_run_params(self):
        run = eks_bootstrap.pipeline_run(_spec())
        params = {p['name']: p['value'] for p in run['spec']['params']}
        assert params == {'cluster-name': 'eks-01', 'region': 'us-west-2', 'node-count': '2'}
        assert run['spec']['pipelineSpec']['tasks'][0]['taskRef']['name'] == eks_bootstrap.TASK_NAME

    def test_scripts_render_as_block_literals(self):
        manifest_set = ManifestCompiler().compile(_spec())
        content = manifest_set.get_file('clusters/eks-01/acm-import.pipeline.yaml').render()
        assert 'script: |' in content
        docs = list(yaml.safe_load_all(content))
        assert [d['kind'] for d in docs] == ['Task', 'PipelineRun']


class TestOcpGenerator:
    """Install-config input plus base patches."""

    def _set(self):
        spec = RegionalSpec.from_dict({'name': 'ocp-01', 'type': 'ocp', 'domain': 'example.com',
                                       'region': 'us-east-1', 'replicas': 4, 'version': '4.15.2'})
        return ManifestCompiler().compile(spec)

    def test_files(self):
        paths = [f.path for f in self._set().cluster_files]
        assert paths == ['clusters/ocp-01/namespace.yaml',
                         'clusters/ocp-01/install-config.yaml',
                         'clusters/ocp-01/kustomization.yaml']

    def test_install_config(self):
        config = self._set().get_file('clusters/ocp-01/install-config.yaml').documents[0]
        assert config['controlPlane']['replicas'] == 3
        assert config['compute'][0]['replicas'] == 4
        assert config['networking']['networkType'] == 'OVNKubernetes'
        assert config['platform']['aws']['region'] == 'us-east-1'
        assert config['pullSecret'] == ''

    def test_install_config_is_not_a_resource(self):
        assert 'kind' not in self._set().get_file('clusters/ocp-01/install-config.yaml').documents[0]
        assert self._set().kinds() == ['Namespace', 'Kustomization']

    def test_six_patch_targets(self):
        kustomization = self._set().get_file('clusters/ocp-01/kustomization.yaml').documents[0]
        kinds = [p['target']['kind'] for p in kustomization['patches']]
        assert kinds == ['ClusterDeployment', 'ManagedCluster', 'MachinePool',
                         'KlusterletAddonConfig', 'ExternalSecret', 'ExternalSecret']
        assert kustomization['secretGenerator'][0]['files'] == ['install-config.yaml']
        assert kustomization['resources'][0] == ocp.BASE_PATH

    def test_cluster_deployment_patch_values(self):
        kustomization = self._set().get_file('clusters/ocp-01/kustomization.yaml').documents[0]
        ops = {op['path']: op['value'] for op in kustomization['patches'][0]['patch']}
        assert ops['/metadata/namespace'] == 'ocp-01'
        assert ops['/spec/platform/aws/region'] == 'us-east-1'
        assert ops['/spec/provisioning/imageSetRef/name'] == 'img4.15.2-x86-64-appsub'

    def test_unmatched_patch_targets(self):
        base = [
            {'apiVersion': 'hive.openshift.io/v1', 'kind': 'ClusterDeployment', 'metadata': {'name': 'x'}},
            {'apiVersion': 'hive.openshift.io/v1beta1', 'kind': 'MachinePool', 'metadata': {'name': 'x'}},
            {'apiVersion': 'external-secrets.io/v1beta1', 'kind': 'ExternalSecret', 'metadata': {'name': 'aws-creds'}},
        ]
        missing = {(t.kind, t.name) for t in ocp.unmatched_patch_targets(base)}
        assert missing == {('ManagedCluster', None), ('MachinePool', None),
                           ('KlusterletAddonConfig', None), ('ExternalSecret', 'pull-secret')}


class TestHcpGenerator:
    """HostedCluster + NodePool with single-replica control plane."""

    def _set(self):
        spec = RegionalSpec.from_dict({'name': 'hcp-01', 'type': 'hcp', 'domain': 'example.com',
                                       'replicas': 2, 'version': '4.15.2'})
        return ManifestCompiler(GeneratorSettings(secret_store='aws-store')).compile(spec)

    def test_resources(self):
        kinds = self._set().kinds()
        assert kinds.count('HostedCluster') == 1
        assert kinds.count('NodePool') == 1
        assert kinds.count('ExternalSecret') == 2
        assert 'Secret' in kinds

    def test_single_replica_topology(self):
        hosted = self._set().by_key()[('HostedCluster', 'hcp-01')]
        assert hosted['spec']['controllerAvailabilityPolicy'] == 'SingleReplica'
        assert hosted['spec']['infrastructureAvailabilityPolicy'] == 'SingleReplica'
        assert hosted['spec']['release']['image'].endswith(':4.15.2-x86_64')

    def test_node_pool(self):
        pool = self._set().by_key()[('NodePool', 'hcp-01-workers')]
        assert pool['spec']['replicas'] == 2
        assert pool['spec']['clusterName'] == 'hcp-01'

    def test_external_secrets_use_configured_store(self):
        for doc in self._set().documents():
            if doc['kind'] == 'ExternalSecret':
                assert doc['spec']['secretStoreRef']['name'] == 'aws-store'
