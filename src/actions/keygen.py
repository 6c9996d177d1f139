"""SSH key pair generation for a deployment workspace."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from common import ActionResult, run_command
from config import Settings

logger = logging.getLogger(__name__)


@dataclass
class GenerateKeyPairAction:
    """Generate an RSA key pair (``{key_name}`` and ``{key_name}.pub``) in the workspace."""
    key_name: str
    comment: str = ''
    name: str = 'keygen'
    bits: int = 4096

    def run(self, settings: Settings, context: dict) -> ActionResult:
        """Run ssh-keygen; succeeds only if the public key exists afterward."""
        start = time.time()

        workspace = context.get('workspace_dir')
        if not workspace:
            return ActionResult(
                success=False,
                message="No workspace_dir in context",
                duration=time.time() - start
            )

        key_path = Path(workspace) / self.key_name
        logger.info(f"[{self.name}] Generating {self.bits}-bit RSA key {key_path.name}...")
        result = run_command(
            ['ssh-keygen', '-q', '-t', 'rsa', '-b', str(self.bits),
             '-f', str(key_path), '-N', '', '-C', self.comment or self.key_name],
            timeout=settings.timeouts.keygen
        )
        if not result.ok:
            logger.error(f"[{self.name}] ssh-keygen failed: {result.error_text()}")

        public_key = key_path.with_name(f'{key_path.name}.pub')
        if not public_key.exists():
            return ActionResult(
                success=False,
                message=f"Key generation failed: {result.error_text() if not result.ok else 'no public key written'}",
                duration=time.time() - start
            )

        if key_path.exists():
            key_path.chmod(0o600)

        return ActionResult(
            success=True,
            message=f"Key pair {self.key_name} generated",
            duration=time.time() - start,
            context_updates={'key_path': str(key_path), 'ssh_key_name': self.key_name}
        )
