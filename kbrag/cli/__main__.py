"""Allow ``python -m kbrag.cli`` execution."""

from kbrag.cli.kb import main

main()
