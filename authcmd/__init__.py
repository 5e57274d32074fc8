"""authcmd - SSH forced-command gatekeeper."""

__version__ = "0.1.0"
