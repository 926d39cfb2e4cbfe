"""Allow ``python -m coursemind.cli`` execution."""

from coursemind.cli.jobs import main

main()
