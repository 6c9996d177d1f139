"""Natural-language machine selection.

Asks the Anthropic Messages API to pick one of the predefined machines for a
free-text request. Any failure (no API key, network error, unexpected answer)
falls back to the first predefined machine.
"""

import logging

import requests

from catalog import PREDEFINED_MACHINES, region_display_name
from config import Settings

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = '2023-06-01'


def describe_machines(machines: list[dict]) -> str:
    lines = []
    for index, machine in enumerate(machines, start=1):
        application = machine['application']
        lines.append(
            f"{index}. {machine['name']}\n"
            f"   - Description: {machine['description']}\n"
            f"   - Region: {region_display_name(machine['region'])} ({machine['region']})\n"
            f"   - Instance Size: {machine['instanceSize']}\n"
            f"   - Application: {'No application' if application == 'none' else application}"
        )
    return '\n\n'.join(lines)


def build_prompt(text: str, machines: list[dict]) -> str:
    return f"""You are an expert system administrator helping users select the best VM configuration for their needs.

Here are the available predefined machine configurations:

{describe_machines(machines)}

The user has requested: "{text}"

Based on the user's request, select the BEST matching machine from the list above. Consider:
- The user's stated requirements and use case
- Geographic location preferences (if mentioned)
- Performance needs (instance size)
- Specific applications they need

Respond with ONLY the number (1, 2, etc.) of the best matching machine. No explanation needed."""


def parse_choice(answer: str, count: int):
    """Return the zero-based index named in the answer, or None."""
    token = answer.strip().split()[0].rstrip('.') if answer.strip() else ''
    if not token.isdigit():
        return None
    index = int(token) - 1
    if 0 <= index < count:
        return index
    return None


def select_configuration(text: str, settings: Settings) -> dict:
    """Pick the predefined machine best matching a free-text request.

    Returns:
        A copy of the chosen predefined machine record
    """
    machines = PREDEFINED_MACHINES
    fallback = dict(machines[0])

    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not set, using default machine")
        return fallback

    try:
        resp = requests.post(
            settings.selector_endpoint,
            headers={
                'x-api-key': settings.anthropic_api_key,
                'anthropic-version': ANTHROPIC_VERSION,
                'content-type': 'application/json',
            },
            json={
                'model': settings.selector_model,
                'max_tokens': 10,
                'messages': [{'role': 'user', 'content': build_prompt(text, machines)}],
            },
            timeout=settings.selector_timeout
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"Machine selection request failed: {e}")
        return fallback

    if resp.status_code != 200:
        logger.error(f"Machine selection failed: {resp.status_code} - {resp.text[:100]}")
        return fallback

    try:
        content = resp.json().get('content') or []
        answer = content[0].get('text', '') if content[0].get('type') == 'text' else ''
    except (ValueError, IndexError, AttributeError) as e:
        logger.error(f"Unexpected machine selection response: {e}")
        return fallback

    index = parse_choice(answer, len(machines))
    if index is None:
        logger.warning(f"Invalid machine index {answer!r}, using default")
        return fallback

    return dict(machines[index])
