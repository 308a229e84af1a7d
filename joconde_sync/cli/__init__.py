"""Command-line tools for joconde-sync.

- ``python -m joconde_sync.cli parse --file FILE`` -- parse an export only
- ``python -m joconde_sync.cli import --file FILE`` -- import a local export
- ``python -m joconde_sync.cli sync`` -- download and import the remote export
- ``python -m joconde_sync.cli check`` -- ask whether the remote export changed
- ``python -m joconde_sync.cli status`` -- recent runs and catalog counts
- ``python -m joconde_sync.cli cancel RUN_ID`` -- release a RUNNING run left by a dead process

The ``joconde-sync`` console script points at the same entry point.
"""
