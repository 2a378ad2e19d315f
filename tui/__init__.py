"""artifact-chat terminal UI.

A Rich + prompt_toolkit front end for the artifact_chat turn engine:
- Markdown rendering of replies with syntax-highlighted code
- Tool call and result visualization
- Artifact shelf: Tab or /open to view artifacts in the browser

Usage:
    artifact-chat --api-key sk-ant-...

Features:
    - Ctrl+C to cancel a running turn
    - PageUp/PageDown or /up, /down to scroll
    - Ctrl+Q or Ctrl+D to exit
"""

from .app import ChatApp, main

__all__ = ["ChatApp", "main"]
