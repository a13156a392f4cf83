from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from typing import Optional

logger = logging.getLogger(__name__)


def edit_text(initial: Optional[str], editor: str) -> str:
    """Open ``editor`` on a temporary file holding ``initial``; return the result."""
    fd, path = tempfile.mkstemp(prefix="ek-", suffix=".md")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(initial or "")
        cmd = shlex.split(editor) + [path]
        logger.debug("Running editor %s", cmd)
        subprocess.run(cmd, check=True)
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    finally:
        os.unlink(path)
