import os
from pathlib import Path
from typing import Mapping, Optional
from commitwatch.core.errors import ConfigurationError


def get_secret(name: str, env: Optional[Mapping[str, str]] = None) -> str:
    """Look up a secret, preferring a mounted file (NAME_FILE) over the plain env var NAME.
    An empty file falls through to NAME. Raises ConfigurationError when neither yields a value.
    """
    env = os.environ if env is None else env
    file_path = env.get(f"{name}_FILE")
    if file_path and Path(file_path).exists():
        val = Path(file_path).read_text().strip()
        if val:
            return val
    val = env.get(name)
    if not val:
        raise ConfigurationError(f"Missing secret env var: {name}")
    return val.strip()
