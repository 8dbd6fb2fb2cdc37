"""AnyClaw control plane: per-tenant OpenClaw gateways and agents."""

__version__ = "0.1.0"
