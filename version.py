"""
Utility to read the app version from pyproject.toml.
Used for the API metadata and the /health payload.
"""
import tomllib
from pathlib import Path


def get_app_version() -> str:
    """Read semantic version from pyproject.toml."""
    pyproject_path = Path(__file__).parent / "pyproject.toml"

    if not pyproject_path.exists():
        # Installed without the source tree
        return "0.1.0"

    try:
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
            return data.get("project", {}).get("version", "0.1.0")
    except (OSError, tomllib.TOMLDecodeError):
        return "0.1.0"


__version__ = get_app_version()
