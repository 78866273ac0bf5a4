# =============================================================================
# tutorkb/cli/__init__.py -- CLI Module Overview
# =============================================================================
#
# Command-line tools for operators who manage the knowledge base outside
# the HTTP API.  Each submodule can be run with `python -m tutorkb.cli.<name>`.
#
#   INGESTION (ingest.py)
#     Submits documents, bulk directories and videos, reprocesses and
#     deletes items, runs retrieval queries and prints corpus statistics.
#
# All CLI modules use argparse and build their services through
# tutorkb/components.py, the same assembly the web app uses.
# =============================================================================

"""CLI tools for the tutorKB knowledge base.

- ``python -m tutorkb.cli.ingest`` -- ingest, inspect and query the corpus.
"""
