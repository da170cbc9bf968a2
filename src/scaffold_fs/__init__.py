"""scaffold-fs: transactional filesystem operations for code generators."""

__version__ = "0.1.0"
