"""Allow ``python -m joconde_sync.cli`` execution."""

from joconde_sync.cli.sync import main

main()
