"""Allow `python -m learnchain`."""

from learnchain.cli.main import main

main()
