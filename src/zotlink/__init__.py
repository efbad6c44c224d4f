"""zotlink: Better BibTeX JSON-RPC client for Zotero and Juris-M."""

__version__ = "0.1.0"
