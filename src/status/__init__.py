"""Cluster state reconciliation: collect, probe, classify."""

from status.classifier import OK, REMEDIATION, classify
from status.collector import ClusterStatusRecord, StateCollector
from status.probes import PROBES, TIERS, Unavailable, select_probes

__all__ = [
    'OK',
    'REMEDIATION',
    'classify',
    'ClusterStatusRecord',
    'StateCollector',
    'PROBES',
    'TIERS',
    'Unavailable',
    'select_probes',
]
