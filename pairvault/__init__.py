"""pairvault — encrypted storage for named asymmetric key pairs."""

__version__ = "0.1.0"
