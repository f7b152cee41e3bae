# ============================================================================
# attackbench/__init__.py
# AttackBench - Security Testing Workbench Engine
# ============================================================================
#
# PURPOSE:
# Launches external offensive-security tools as managed subprocesses, streams
# their output, turns it into typed findings and seals the results into
# checksummed evidence packages.
#
# PACKAGES:
# - **base/**: configuration, logging setup, attack session state
# - **toolkit/**: tool registry, installers, availability monitor, vectors,
#   wordlists and the output classifier
# - **engine/**: process runner and the attack session manager
# - **data/**: value models, evidence packager and its durable index
# - **server/**: FastAPI HTTP/WebSocket surface
#
# ============================================================================

__version__ = "0.1.0"
