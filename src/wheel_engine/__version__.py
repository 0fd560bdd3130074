"""Wheel engine version information."""
from __future__ import annotations


__version__ = "1.0.0"
__version_info__ = (1, 0, 0)

# Component versions
COMPONENT_VERSIONS = {
    "models": "1.0.0",
    "portfolio": "1.0.0",
    "strategy": "1.0.0",
    "risk": "1.0.0",
    "analytics": "1.0.0",
    "greeks": "1.0.0",
    "storage": "1.0.0",
    "api": "1.0.0",
}

# Schema version of the records handed to downstream consumers
API_VERSION = "v1"


def get_version_string() -> str:
    """Get formatted version string with all component info."""
    lines = [
        f"Wheel Engine v{__version__}",
        "",
        "Component Versions:",
    ]

    for component, version in sorted(COMPONENT_VERSIONS.items()):
        lines.append(f"  {component:<15} {version}")

    return "\n".join(lines)
