#!/usr/bin/env python3
"""Tests for status rendering and phase reports."""

import csv
import io
import json

import pytest

from reporting import PhaseReport, render
from reporting.status import filter_issues, render_table
from regional_spec import ClusterType
from status.collector import ClusterStatusRecord
from status.probes import InfrastructureHealth, Unavailable


def _records():
    healthy = ClusterStatusRecord(name='eks-01', repo_config_present=True, managed_cluster_state='present',
                                  availability='True', namespace_phase='Active', argo_app_count=5,
                                  cluster_type=ClusterType.EKS, issues=['OK'])
    missing = ClusterStatusRecord(name='ocp-09', repo_config_present=True, cluster_type=ClusterType.OCP,
                                  issues=['MISSING_MC'])
    orphan = ClusterStatusRecord(name='hcp-03', managed_cluster_state='present', availability='False',
                                 finalizers_present=True, taints=['a:NoSelect', 'b=c:NoExecute'],
                                 cluster_type=ClusterType.HCP,
                                 issues=['ORPHANED_MC', 'STUCK_FINALIZERS', 'TAINTED'])
    return [healthy, missing, orphan]


class TestTable:
    """Human-readable table with aggregates and remediation."""

    def test_rows_and_summary(self):
        output = render(_records())
        lines = output.splitlines()
        assert lines[0].split() == ['NAME', 'TYPE', 'REPO', 'MC', 'AVAILABLE', 'NAMESPACE', 'APPS', 'ISSUES']
        assert lines[2].split() == ['eks-01', 'eks', 'yes', 'present', 'True', 'Active', '5', 'OK']
        assert 'Clusters: 3  Healthy: 1  With issues: 2' in output
        assert '  MISSING_MC: 1' in output

    def test_remediation_per_code(self):
        output = render(_records())
        remediation = output.split('Remediation:')[1].splitlines()[1:]
        assert [line.split()[1].rstrip(':') for line in remediation] == [
            'MISSING_MC', 'ORPHANED_MC', 'STUCK_FINALIZERS', 'TAINTED',
        ]
        assert all(line.lstrip().startswith('⚠') for line in remediation)

    def test_no_issues(self):
        output = render_table(_records()[:1])
        assert '✓ No issues found' in output
        assert 'Remediation:' not in output

    def test_issues_only_keeps_total(self):
        output = render(_records(), issues_only=True)
        assert 'eks-01' not in output
        assert 'Clusters: 3  Healthy: 0  With issues: 2' in output

    def test_probe_columns_only_when_run(self):
        records = _records()
        assert 'WORKERS' not in render(records)
        records[0].infrastructure = InfrastructureHealth(expected_workers=3, actual_workers=3, ready_workers=2)
        records[1].infrastructure = Unavailable('infrastructure', 'no kubeconfig')
        output = render(records)
        assert 'WORKERS(R/A/E)' in output
        assert '2/3/3' in output
        assert 'n/a' in output


class TestMachineFormats:
    """JSON and CSV carry normalized values and no decoration."""

    def test_json_normalizes_values(self):
        data = json.loads(render(_records(), fmt='json'))
        orphan = data[2]
        assert orphan['repo_config'] is False
        assert orphan['managed_cluster'] is True
        assert orphan['finalizers'] is True
        assert orphan['taints'] == 'a:NoSelect,b=c:NoExecute'
        assert orphan['issues'] == 'ORPHANED_MC,STUCK_FINALIZERS,TAINTED'
        assert data[1]['available'] is None
        assert 'infrastructure' not in orphan

    def test_json_probe_values(self):
        records = _records()
        records[0].infrastructure = InfrastructureHealth(expected_workers=3, actual_workers=3, ready_workers=3)
        records[1].infrastructure = Unavailable('infrastructure', 'timeout')
        data = json.loads(render(records, fmt='json'))
        assert data[0]['infrastructure'] == {'expected_workers': 3, 'actual_workers': 3,
                                             'ready_workers': 3, 'provisioned': None}
        assert data[1]['infrastructure'] == {'unavailable': True, 'reason': 'timeout'}

    def test_json_has_no_markers(self):
        output = render(_records(), fmt='json')
        assert '⚠' not in output and '✓' not in output

    def test_csv(self):
        rows = list(csv.reader(io.StringIO(render(_records(), fmt='csv'))))
        assert rows[0] == ['name', 'type', 'repo', 'mc', 'available', 'namespace', 'apps', 'issues']
        assert rows[3][0] == 'hcp-03'
        assert rows[3][-1] == 'ORPHANED_MC,STUCK_FINALIZERS,TAINTED'

    def test_csv_issues_only(self):
        rows = list(csv.reader(io.StringIO(render(_records(), fmt='csv', issues_only=True))))
        assert [r[0] for r in rows[1:]] == ['ocp-09', 'hcp-03']

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            render(_records(), fmt='yaml')


def test_filter_issues():
    assert [r.name for r in filter_issues(_records())] == ['ocp-09', 'hcp-03']


class TestPhaseReport:
    """Per-phase results for lifecycle operations."""

    def test_overall_and_counts(self):
        report = PhaseReport(cluster='eks-01', operation='remove')
        report.start()
        report.start_phase('applications')
        report.pass_phase('applications', 'Delete ArgoCD Applications', 'deleted')
        report.start_phase('backend')
        report.warn_phase('backend', 'Delete backend resource', 'still present')
        report.finish()

        assert report.overall == 'warn'
        assert report.counts() == {'passed': 1, 'warned': 1, 'failed': 0, 'skipped': 0}
        assert report.summary_line() == '⚠ remove eks-01: WARN (1 passed, 1 warned, 0 failed, 0 skipped)'
        assert report.phase_lines()[1] == '  ⚠ Delete backend resource: still present'

    def test_failed_phase_wins(self):
        report = PhaseReport(cluster='eks-01', operation='remove')
        report.warn_phase('a', 'A')
        report.fail_phase('b', 'B')
        assert report.overall == 'fail'

    def test_skipped_only_passes(self):
        report = PhaseReport(cluster='eks-01', operation='remove', dry_run=True)
        report.skip_phase('applications', 'Delete ArgoCD Applications', 'would delete')
        assert report.overall == 'pass'
        assert report.phase_lines() == ['  - Delete ArgoCD Applications: would delete']

    def test_write_json(self, tmp_path):
        report = PhaseReport(cluster='hcp-01', operation='remove')
        report.start()
        report.pass_phase('index', 'Remove GitOps index entry')
        report.finish()

        path = report.write_json(tmp_path / 'reports')
        assert path.name.endswith('.remove.hcp-01.pass.json')
        data = json.loads(path.read_text())
        assert data['result'] == 'pass'
        assert data['phases'][0]['name'] == 'index'
