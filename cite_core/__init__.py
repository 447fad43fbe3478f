"""
Citation library and literature notes for a Markdown notes directory.

This package loads a BibLaTeX or CSL-JSON export into an in-memory library
keyed by citekey and renders literature notes and citations from templates:
- Parsing the export on a worker process (models, worker)
- Reloading when the export changes (watcher)
- Creating and locating literature notes (plugin, vault)
"""

__version__ = "0.1.0"

__all__ = ['config', 'models', 'worker', 'watcher', 'templates', 'plugin', 'vault', 'editor', 'cli']
