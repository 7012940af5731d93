#!/usr/bin/env python3
"""Tests for the manifest compiler: overlays, determinism, writing."""

import logging

import pytest
import yaml

from compiler import OVERLAY_DIRS, ManifestCompiler, cluster_paths, overlay_files
from errors import ValidationError
from regional_spec import RegionalSpec, load_spec


@pytest.fixture
def eks_spec():
    return RegionalSpec.from_dict({'name': 'eks-01', 'type': 'eks', 'region': 'us-west-2', 'replicas': 2})


class TestCompile:
    """compile() is pure and deterministic."""

    def test_same_spec_renders_identically(self, eks_spec):
        compiler = ManifestCompiler()
        assert compiler.compile(eks_spec).render() == compiler.compile(eks_spec).render()

    def test_reloaded_spec_renders_identically(self, repo, write_spec):
        path = write_spec({'name': 'hcp-02', 'type': 'hcp', 'domain': 'example.com'})
        first = ManifestCompiler().compile(load_spec(path)).render()
        second = ManifestCompiler().compile(load_spec(path)).render()
        assert first == second

    def test_overlays_for_every_component(self, eks_spec):
        paths = ManifestCompiler().compile(eks_spec).render()
        for directory in OVERLAY_DIRS.values():
            assert f'{directory}/eks-01/kustomization.yaml' in paths

    def test_cloud_infra_pipeline_run(self, eks_spec):
        files = {f.path: f for f in overlay_files(eks_spec)}
        run = files['pipelines/cloud-infrastructure-provisioning/eks-01/'
                    'cloud-infrastructure-provisioning.pipelinerun.yaml'].documents[0]
        params = {p['name']: p['value'] for p in run['spec']['params']}
        assert params == {'cluster-name': 'eks-01', 'cloud-provider': 'aws', 'region': 'us-west-2',
                          'instance-type': 'm5.large', 'node-count': '2'}
        assert run['metadata']['namespace'] == 'ocm-eks-01'

    def test_every_kustomization_disables_hashing(self, eks_spec):
        for manifest in ManifestCompiler().compile(eks_spec).files:
            if manifest.filename == 'kustomization.yaml':
                assert manifest.documents[0]['generatorOptions'] == {'disableNameSuffixHash': True}

    def test_cluster_paths(self):
        assert cluster_paths('ocp-01') == [
            'clusters/ocp-01',
            'operators/openshift-pipelines/ocp-01',
            'pipelines/hello-world/ocp-01',
            'pipelines/cloud-infrastructure-provisioning/ocp-01',
            'deployments/ocm/ocp-01',
        ]

    def test_invalid_spec_aborts(self, repo, write_spec):
        path = write_spec({'name': 'ocp-03', 'type': 'ocp'})
        with pytest.raises(ValidationError):
            ManifestCompiler().compile(load_spec(path))


class TestWrite:
    """Persisting a manifest set."""

    def test_writes_all_files(self, repo, eks_spec):
        compiler = ManifestCompiler()
        manifest_set = compiler.compile(eks_spec)
        written = compiler.write(manifest_set, repo)
        assert len(written) == len(manifest_set.files)
        ns = yaml.safe_load((repo / 'clusters/eks-01/namespace.yaml').read_text())
        assert ns['metadata']['name'] == 'eks-01'

    def test_regeneration_overwrites_deterministically(self, repo, eks_spec):
        compiler = ManifestCompiler()
        manifest_set = compiler.compile(eks_spec)
        compiler.write(manifest_set, repo)
        before = {p: (repo / p).read_text() for p in manifest_set.render()}
        compiler.write(compiler.compile(eks_spec), repo)
        after = {p: (repo / p).read_text() for p in manifest_set.render()}
        assert before == after

    def test_plan(self, repo, eks_spec):
        compiler = ManifestCompiler()
        manifest_set = compiler.compile(eks_spec)
        assert {action for action, _ in compiler.plan(manifest_set, repo)} == {'create'}

        compiler.write(manifest_set, repo)
        assert {action for action, _ in compiler.plan(manifest_set, repo)} == {'unchanged'}

        (repo / 'clusters/eks-01/cluster.yaml').write_text('changed: true\n')
        plan = dict((path, action) for action, path in compiler.plan(manifest_set, repo))
        assert plan['clusters/eks-01/cluster.yaml'] == 'update'

    def test_dry_run_plan_writes_nothing(self, repo, eks_spec):
        compiler = ManifestCompiler()
        compiler.plan(compiler.compile(eks_spec), repo)
        assert not (repo / 'clusters').exists()

    def test_warns_on_unmatched_patch_targets(self, repo, caplog):
        bases = repo / 'bases' / 'clusters'
        bases.mkdir(parents=True)
        (bases / 'clusterdeployment.yaml').write_text(yaml.safe_dump({
            'apiVersion': 'hive.openshift.io/v1', 'kind': 'ClusterDeployment', 'metadata': {'name': 'placeholder'},
        }))
        spec = RegionalSpec.from_dict({'name': 'ocp-01', 'type': 'ocp', 'domain': 'example.com'})
        compiler = ManifestCompiler()
        with caplog.at_level(logging.WARNING, logger='compiler'):
            compiler.write(compiler.compile(spec), repo)
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert any('ManagedCluster' in w for w in warnings)
        assert not any('ClusterDeployment' in w for w in warnings)
