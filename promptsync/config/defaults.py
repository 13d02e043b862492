"""
Default configuration values for promptsync.

Centralized defaults that can be overridden by environment variables or the
config file.
"""

import copy
from typing import Any, Dict

DEFAULT_SETTINGS = {
    # Vault location; unset until configured
    "vault_path": None,
    "cache_path": None,

    # Frontmatter conventions
    "frontmatter": {
        "prompt_tags_property": "tags",
        "add_prompts_tag_to_tags": False,
        "prompts_tag": "prompts"
    },

    # Vault scanning
    "scanner": {
        "extension": ".md",
        "max_concurrent_reads": 16
    },

    # Change watcher
    "watcher": {
        "debounce_ms": 300,
        "shutdown_timeout_s": 3.0,
        "recursive": False
    }
}

# Environment variable mappings
ENV_VAR_MAPPING = {
    'PROMPTSYNC_VAULT_PATH': 'vault_path',
    'PROMPTSYNC_CACHE_PATH': 'cache_path',
    'PROMPTSYNC_TAGS_PROPERTY': 'frontmatter.prompt_tags_property',
    'PROMPTSYNC_ADD_PROMPTS_TAG': 'frontmatter.add_prompts_tag_to_tags',
    'PROMPTSYNC_PROMPTS_TAG': 'frontmatter.prompts_tag',
    'PROMPTSYNC_EXTENSION': 'scanner.extension',
    'PROMPTSYNC_MAX_CONCURRENT_READS': 'scanner.max_concurrent_reads',
    'PROMPTSYNC_DEBOUNCE_MS': 'watcher.debounce_ms',
}

# Keys that must stay strings even when the value looks numeric or boolean
STRING_VALUED_PATHS = {
    'vault_path',
    'cache_path',
    'frontmatter.prompt_tags_property',
    'frontmatter.prompts_tag',
    'scanner.extension',
}


def get_default_config() -> Dict[str, Any]:
    """Get a fresh copy of the default configuration"""
    return copy.deepcopy(DEFAULT_SETTINGS)
