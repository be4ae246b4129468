"""Identity, credential vault, CRM proxy and ATS synchronization service."""

__version__ = "0.1.0"
