"""Email authentication (SPF/DKIM/DMARC) verification and blacklist reputation scoring."""

__version__ = "0.2.0"
