"""Reusable deployment actions."""

from actions.tofu import (
    TofuInitAction,
    TofuApplyAction,
    TofuOutputAction,
    TofuDestroyAction,
    Provisioner,
)
from actions.ssh import SettleAction, CopyScriptAction, RunScriptAction, Bootstrapper
from actions.keygen import GenerateKeyPairAction

__all__ = [
    'TofuInitAction',
    'TofuApplyAction',
    'TofuOutputAction',
    'TofuDestroyAction',
    'Provisioner',
    'SettleAction',
    'CopyScriptAction',
    'RunScriptAction',
    'Bootstrapper',
    'GenerateKeyPairAction',
]
