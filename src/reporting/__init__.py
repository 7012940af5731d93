"""Reporting for lifecycle phases and cluster status."""

from reporting.report import PhaseReport, PhaseResult
from reporting.status import FORMATS, render

__all__ = ['PhaseReport', 'PhaseResult', 'FORMATS', 'render']
