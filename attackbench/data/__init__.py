# ============================================================================
# attackbench/data/__init__.py
# Data Layer Package - Models, Evidence and Persistence
# ============================================================================
#
# MODULES IN THIS PACKAGE:
# - **models.py**: pydantic value objects shared by every layer
# - **evidence_store.py**: seals results into checksummed evidence packages
# - **db.py**: aiosqlite index that lets packages survive restarts
#
# ============================================================================
