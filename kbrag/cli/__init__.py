# =============================================================================
# kbrag/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Operator command line for kbrag.  ``kb.py`` holds every subcommand; the
# ``kbrag`` console script and ``python -m kbrag.cli`` both run it.
#
# Architecture Notes:
#   - argparse for argument parsing.
#   - Heavy imports (openai, chromadb) are deferred inside factory functions
#     so commands that do not need them start fast.
#   - Each command builds its own providers rather than relying on a
#     long-lived container, because CLI commands run as one-shot scripts.
# =============================================================================

"""Command-line tools for kbrag.

- ``python -m kbrag.cli`` / ``kbrag`` - manage knowledge bases, upload
  documents, search and delete.
"""
