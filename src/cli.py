#!/usr/bin/env python3
"""CLI entry point for vm-canvas.

Nouns:
- server: Run the deployment API
- machine: Stored machine configurations (list/get/create/update/delete)
- deploy: Deploy a stored machine
- catalog: Regions, instance sizes, applications and predefined machines
- select: Pick a predefined machine from a free-text request
- preflight: Check required tools and directories
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml

import catalog
from config import ConfigError, load_settings
from errors import ValidationError
from orchestrator import DeploymentOrchestrator
from selector import select_configuration
from store import MachineStore
from validation import format_preflight_results, run_preflight_checks

NOUN_COMMANDS = {
    "server": "Run the deployment API",
    "machine": "Stored machine configurations (list/get/create/update/delete)",
    "deploy": "Deploy a stored machine",
    "catalog": "Regions, instance sizes, applications and predefined machines",
    "select": "Pick a predefined machine from a free-text request",
    "preflight": "Check required tools and directories",
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _load_record(args) -> dict:
    """Build a machine record from --file (JSON or YAML) and field flags."""
    record: dict = {}
    if getattr(args, 'file', None):
        with open(args.file, encoding='utf-8') as f:
            record = yaml.safe_load(f) or {}
        if not isinstance(record, dict):
            raise ValidationError(f"{args.file} must contain a mapping")

    for flag, key in (
        ('id', 'id'),
        ('name', 'name'),
        ('region', 'region'),
        ('size', 'instanceSize'),
        ('application', 'application'),
        ('status', 'deploymentStatus'),
    ):
        value = getattr(args, flag, None)
        if value is not None:
            record[key] = value
    return record


def _add_field_args(parser: argparse.ArgumentParser, with_id: bool) -> None:
    if with_id:
        parser.add_argument('--id', help='Machine id')
    parser.add_argument('--name', help='Display name')
    parser.add_argument('--region', choices=catalog.REGIONS, help='Deployment region')
    parser.add_argument('--size', choices=catalog.INSTANCE_SIZES, help='Instance size')
    parser.add_argument('--application', choices=catalog.APPLICATIONS, help='Application to install')
    parser.add_argument('--file', '-f', type=Path, help='Record file (JSON or YAML)')


def machine_main(argv: list, store: MachineStore) -> int:
    """Handle 'machine <action>'."""
    parser = argparse.ArgumentParser(prog='vm-canvas machine', description='Manage stored machines')
    sub = parser.add_subparsers(dest='action', required=True)

    list_parser = sub.add_parser('list', help='List machines')
    list_parser.add_argument('--status', help='Only machines with this deployment status')
    list_parser.add_argument('--region', help='Only machines in this region')

    get_parser = sub.add_parser('get', help='Show one machine')
    get_parser.add_argument('machine_id')

    create_parser = sub.add_parser('create', help='Create a machine')
    _add_field_args(create_parser, with_id=True)

    update_parser = sub.add_parser('update', help='Update fields of a machine')
    update_parser.add_argument('machine_id')
    _add_field_args(update_parser, with_id=False)

    delete_parser = sub.add_parser('delete', help='Delete a machine')
    delete_parser.add_argument('machine_id')

    args = parser.parse_args(argv)

    if args.action == 'list':
        if args.status:
            machines = store.list_by_status(args.status)
        elif args.region:
            machines = store.list_by_region(args.region)
        else:
            machines = store.list()
        _print_json([m.to_dict() for m in machines])
        return 0

    if args.action == 'get':
        machine = store.get(args.machine_id)
        if machine is None:
            print(f"Error: Machine not found: {args.machine_id}", file=sys.stderr)
            return 1
        _print_json(machine.to_dict())
        return 0

    if args.action == 'delete':
        if not store.delete(args.machine_id):
            print(f"Error: Machine not found: {args.machine_id}", file=sys.stderr)
            return 1
        print(f"Deleted {args.machine_id}")
        return 0

    try:
        record = _load_record(args)
        if args.action == 'create':
            machine = store.create(record)
        else:
            machine = store.update(args.machine_id, record)
            if machine is None:
                print(f"Error: Machine not found: {args.machine_id}", file=sys.stderr)
                return 1
    except (ValidationError, OSError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_json(machine.to_dict())
    return 0


def deploy_main(argv: list, settings, store: MachineStore) -> int:
    """Handle 'deploy <machine-id>'."""
    parser = argparse.ArgumentParser(prog='vm-canvas deploy', description='Deploy a stored machine')
    parser.add_argument('machine_id')
    parser.add_argument('--json', action='store_true', help='Print the result as JSON')
    args = parser.parse_args(argv)

    machine = store.get(args.machine_id)
    if machine is None:
        print(f"Error: Machine not found: {args.machine_id}", file=sys.stderr)
        return 1

    result = DeploymentOrchestrator(settings, store=store).deploy(machine)
    response = result.to_response(machine.id)

    if args.json:
        _print_json(response)
    elif result.success:
        print(f"Deployed {machine.id} at {result.public_ip}")
        print(f"  Workspace: {result.deployment_dir}")
        print(f"  Connect:   {result.ssh_command}")
        for warning in result.warnings:
            print(f"  Warning:   {warning}")
    else:
        print(f"Deployment of {machine.id} failed: {result.error_code}: {result.error_message}",
              file=sys.stderr)
        if result.destroy_error:
            print(f"  {result.destroy_error}", file=sys.stderr)

    return 0 if result.success else 1


def print_usage() -> None:
    print("Usage: vm-canvas <noun> [options]")
    print()
    print("Nouns:")
    for noun, description in NOUN_COMMANDS.items():
        print(f"  {noun:<10} {description}")
    print()
    print("Global options (before the noun): --config FILE, --verbose")


def main(argv=None) -> int:
    """Dispatch to noun-specific handler."""
    argv = list(sys.argv[1:] if argv is None else argv)

    config_path = None
    while argv and argv[0].startswith('-'):
        flag = argv.pop(0)
        if flag in ('--verbose', '-v'):
            logging.getLogger().setLevel(logging.DEBUG)
        elif flag in ('--config', '-c') and argv:
            config_path = Path(argv.pop(0))
        elif flag in ('--help', '-h'):
            print_usage()
            return 0
        else:
            print(f"Error: Unknown option '{flag}'", file=sys.stderr)
            return 1

    if not argv:
        print_usage()
        return 1

    noun, rest = argv[0], argv[1:]
    if noun not in NOUN_COMMANDS:
        print(f"Error: Unknown noun '{noun}'", file=sys.stderr)
        print(f"Available nouns: {', '.join(NOUN_COMMANDS)}", file=sys.stderr)
        return 1

    if noun == 'server':
        from server.cli import main as server_main
        if config_path is not None:
            rest = ['--config', str(config_path)] + rest
        rc: int = server_main(rest)
        return rc

    if noun == 'catalog':
        _print_json(catalog.to_dict())
        return 0

    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if noun == 'select':
        if not rest:
            print("Usage: vm-canvas select \"<request>\"", file=sys.stderr)
            return 1
        _print_json(select_configuration(' '.join(rest), settings))
        return 0

    if noun == 'preflight':
        success, results = run_preflight_checks(settings)
        print(format_preflight_results(results))
        return 0 if success else 1

    store = MachineStore(settings.machines_file)
    if noun == 'machine':
        return machine_main(rest, store)
    return deploy_main(rest, settings, store)


if __name__ == '__main__':
    sys.exit(main())
