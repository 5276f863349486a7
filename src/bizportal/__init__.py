"""BizPortal - client portal trust and session core for small-business workspaces."""

__version__ = "0.1.0"
