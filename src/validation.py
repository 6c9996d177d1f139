"""Pre-flight validation checks.

Catches missing tools and unusable directories before a deployment starts,
with actionable error messages.
"""

import logging
import os
import shutil
from pathlib import Path

from common import run_command
from config import Settings

logger = logging.getLogger(__name__)

REMOTE_TOOLS = ('ssh', 'scp', 'ssh-keygen')


def validate_tool(name: str, version_args: tuple = ('version',)) -> list[str]:
    """Check a tool is on PATH and answers a version query.

    Returns:
        List of validation error messages (empty if valid)
    """
    path = shutil.which(name)
    if not path:
        return [f"'{name}' not found on PATH"]

    if version_args:
        result = run_command([path, *version_args], timeout=30)
        if not result.ok:
            return [f"'{name} {' '.join(version_args)}' failed: {result.error_text()}"]
    return []


def validate_directory(path: Path, label: str) -> list[str]:
    """Check a directory exists (or can be created) and is writable."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return [f"{label} {path} cannot be created: {e}"]
    if not os.access(path, os.W_OK):
        return [f"{label} {path} is not writable"]
    return []


def run_preflight_checks(settings: Settings) -> tuple[bool, dict]:
    """Run all preflight checks.

    Returns:
        (success, results) tuple where results maps a check group to
        {'passed': [...], 'failed': [...]}
    """
    results: dict[str, dict[str, list[str]]] = {
        'provisioning': {'passed': [], 'failed': []},
        'remote': {'passed': [], 'failed': []},
        'storage': {'passed': [], 'failed': []},
        'selection': {'passed': [], 'failed': []},
    }

    errors = validate_tool(settings.tool)
    if errors:
        results['provisioning']['failed'].extend(errors)
    else:
        results['provisioning']['passed'].append(f"{settings.tool} installed")

    for tool in REMOTE_TOOLS:
        # ssh-keygen and scp have no version flag; presence is enough
        errors = validate_tool(tool, version_args=())
        if errors:
            results['remote']['failed'].extend(errors)
        else:
            results['remote']['passed'].append(f"{tool} installed")

    for path, label in ((settings.data_dir, 'Data dir'), (settings.deployments_dir, 'Deployments dir')):
        errors = validate_directory(path, label)
        if errors:
            results['storage']['failed'].extend(errors)
        else:
            results['storage']['passed'].append(f"{label} {path} writable")

    # Selection falls back to a default machine, so a missing key is not a failure
    if settings.anthropic_api_key:
        results['selection']['passed'].append("ANTHROPIC_API_KEY set")
    else:
        results['selection']['passed'].append("ANTHROPIC_API_KEY not set (selection uses default machine)")

    success = not any(group['failed'] for group in results.values())
    return success, results


def format_preflight_results(results: dict) -> str:
    """Format preflight results for terminal output."""
    lines = ["Preflight checks", ""]
    for group, outcome in results.items():
        lines.append(f"{group}:")
        for message in outcome['passed']:
            lines.append(f"  [ OK ] {message}")
        for message in outcome['failed']:
            lines.append(f"  [FAIL] {message}")
    failed = sum(len(outcome['failed']) for outcome in results.values())
    lines.append("")
    lines.append("All checks passed" if not failed else f"{failed} check(s) failed")
    return '\n'.join(lines)
