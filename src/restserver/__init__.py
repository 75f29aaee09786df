"""restserver - restic REST backend server over a generic object store."""

__version__ = "0.1.0"
