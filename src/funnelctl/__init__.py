"""funnelctl: short-lived public HTTPS tunnels through the tailscaled LocalAPI."""

__version__ = "0.1.0"
