# =============================================================================
# tutorkb/cli/__main__.py -- Package Entry Point
# =============================================================================
#
# Running `python -m tutorkb.cli` delegates to the ingestion CLI, the only
# command-line tool in this package.
# =============================================================================

"""Allow ``python -m tutorkb.cli`` execution."""

from tutorkb.cli.ingest import main

main()
