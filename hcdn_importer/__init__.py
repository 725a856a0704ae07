"""HCDN bill importer: resumable crawler for the Chamber of Deputies bill search."""

__version__ = "0.3.0"
