"""Constants for the citations package."""

import re

# Characters that may not appear in a literature note file name
DISALLOWED_FILENAME_CHARACTERS_RE = re.compile(r'[*"\\/<>:|?]')

# Word under the cursor when looking up a citekey in the editor
CITEKEY_WORD_RE = re.compile(r'[\w:.\-]+')

# Zotero attachment storage directory, e.g. .../storage/ABCD1234/paper.pdf
ZOTERO_STORAGE_RE = re.compile(r'[/\\]storage[/\\]([A-Z0-9]{8})[/\\]')

# File extensions
MARKDOWN_EXTENSIONS = [".md", ".markdown"]

# Default configuration values
DEFAULT_CONFIG_PATH = "~/.config/zk_scripts/citations.yaml"
DEFAULT_NOTES_DIR = "~/notes"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_NVIM_SOCKET = "/tmp/obsidian.sock"

# Citation settings
DEFAULT_EXPORT_FORMAT = "csl-json"
DEFAULT_LITERATURE_NOTE_FOLDER = "Reading notes"
DEFAULT_TITLE_TEMPLATE = "@{{citekey}}"
DEFAULT_CONTENT_TEMPLATE = (
    "---\n"
    "title: {{title}}\n"
    "authors: {{authorString}}\n"
    "year: {{year}}\n"
    "---\n\n"
)
DEFAULT_MARKDOWN_CITATION_TEMPLATE = "[@{{citekey}}]"
DEFAULT_ALTERNATIVE_MARKDOWN_CITATION_TEMPLATE = "@{{citekey}}"

# Seconds of quiescence before an export file change triggers a reload
DEFAULT_STABILITY_THRESHOLD = 0.5

# Compiled templates kept around, keyed by template source
TEMPLATE_CACHE_SIZE = 32

# Events emitted by the plugin
EVENT_LOAD_START = "library-load-start"
EVENT_LOAD_COMPLETE = "library-load-complete"

# User-visible notices
LOAD_ERROR_MESSAGE = "Unable to load citations. Please update the citations settings."
LITERATURE_NOTE_ERROR_MESSAGE = (
    "Unable to access literature note. Please check that the literature note "
    "folder exists, or update the citations settings."
)
