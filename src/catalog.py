"""Supported regions, instance sizes, applications and predefined machines."""

REGION_DISPLAY_NAMES = {
    'us-east-1': 'Virginia',
    'us-east-2': 'Ohio',
    'us-west-1': 'San Francisco',
    'us-west-2': 'Oregon',
    'eu-west-1': 'Ireland',
    'eu-central-1': 'Frankfurt',
    'ap-northeast-1': 'Tokyo',
    'ap-southeast-1': 'Singapore',
    'ap-southeast-2': 'Sydney',
}

REGIONS = tuple(REGION_DISPLAY_NAMES)

INSTANCE_SIZES = (
    't2.micro',
    't2.small',
    't2.medium',
    't3.micro',
    't3.small',
    't3.medium',
    't3.large',
    'm5.large',
    'm5.xlarge',
    'c5.large',
    'c5.xlarge',
)

# 'none' provisions the base toolset only
APPLICATIONS = ('vscode', 'claude-code', 'slate', 'none')

PREDEFINED_MACHINES = [
    {
        'id': 'vscode-large-eu-west',
        'name': 'VSCode Machine',
        'description': 'Good for development agents',
        'region': 'eu-west-1',
        'instanceSize': 't3.large',
        'application': 'vscode',
    },
    {
        'id': 'basic-micro-us-east',
        'name': 'Claude machine',
        'description': 'Small agent machine',
        'region': 'us-east-1',
        'instanceSize': 't2.micro',
        'application': 'none',
    },
]


def region_display_name(region: str) -> str:
    """Human-readable city for a region code (falls back to the code)."""
    return REGION_DISPLAY_NAMES.get(region, region)


def regions_with_display_names() -> list[dict]:
    return [{'code': code, 'name': name} for code, name in REGION_DISPLAY_NAMES.items()]


def to_dict() -> dict:
    """Catalog as served by the API and printed by the CLI."""
    return {
        'regions': regions_with_display_names(),
        'instanceSizes': list(INSTANCE_SIZES),
        'applications': list(APPLICATIONS),
        'machines': [dict(m) for m in PREDEFINED_MACHINES],
    }
