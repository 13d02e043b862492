"""
promptsync - keep a Markdown prompt vault and a structured cache in step.
"""

__version__ = "1.0.0"
