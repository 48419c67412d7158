"""MyInfo v5 (Singpass) login service: PKCE, DPoP and encrypted person data."""

__version__ = "0.1.0"
