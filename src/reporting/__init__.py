"""Deployment reports written into each workspace."""

from reporting.report import DeploymentReport, PhaseResult

__all__ = ['DeploymentReport', 'PhaseResult']
