"""
Command execution utilities.

Used to hand zotero:// and file:// URIs to the system opener.
"""

import os
import sys
import shutil
import logging
import subprocess
from typing import List, Optional, Tuple, Dict

logger = logging.getLogger(__name__)

OPENER_COMMANDS = ["xdg-open", "open", "wslview"]


class CommandExecutor:
    """Class for executing external commands with proper error handling."""

    @staticmethod
    def run(
        cmd: List[str],
        check: bool = False,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None
    ) -> Tuple[int, str, str]:
        """
        Run a command and return the return code, stdout, and stderr.

        Args:
            cmd: Command to run as a list of strings
            check: Whether to raise an exception on non-zero return code
            env: Optional environment variables to set
            cwd: Optional working directory

        Returns:
            Tuple containing (return_code, stdout, stderr)
        """
        try:
            process_env = os.environ.copy()
            if env:
                process_env.update(env)
            proc = subprocess.run(
                cmd,
                text=True,
                capture_output=True,
                check=check,
                env=process_env,
                cwd=cwd
            )
            return proc.returncode, proc.stdout, proc.stderr
        except subprocess.CalledProcessError as e:
            logger.error(f"Command failed: {' '.join(cmd)}")
            return e.returncode, e.stdout or "", e.stderr or ""
        except OSError as e:
            logger.error(f"Error running command {' '.join(cmd)}: {e}")
            return 1, "", f"Error executing command: {e}"

    @staticmethod
    def find_command(possible_commands: List[str]) -> Optional[str]:
        """
        Find the first available command from a list of possible commands.

        Returns:
            First available command or None if none found
        """
        for cmd in possible_commands:
            if shutil.which(cmd):
                return cmd
        return None

    @staticmethod
    def open_uri(uri: str) -> bool:
        """
        Open a URI (zotero://, file://, https://) with the system opener.

        Returns:
            True if the opener ran successfully
        """
        if sys.platform.startswith("win"):
            cmd = ["cmd", "/c", "start", "", uri]
        else:
            opener = CommandExecutor.find_command(OPENER_COMMANDS)
            if opener is None:
                logger.error(f"No URI opener found (tried {', '.join(OPENER_COMMANDS)})")
                return False
            cmd = [opener, uri]
        rc, _, stderr = CommandExecutor.run(cmd)
        if rc != 0:
            logger.error(f"Could not open {uri}: {stderr.strip()}")
            return False
        return True
