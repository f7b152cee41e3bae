# ============================================================================
# attackbench/base/__init__.py
# Base Package - Configuration and Session State
# ============================================================================
#
# MODULES IN THIS PACKAGE:
# - **config.py**: WorkbenchConfig sections, environment loading, logging setup
# - **session.py**: AttackSession, the mutable state of one attack run
#
# ============================================================================
