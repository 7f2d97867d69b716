"""Client side of the tailscaled LocalAPI (transport, framing, protocol)."""
