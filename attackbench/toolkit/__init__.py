"""Module __init__: tool knowledge for the workbench."""
#
# PURPOSE:
# Everything that knows about the external tools themselves: which exist,
# where their binaries live, how to install them, which attacks use them,
# and how to read what they print.
#
# MODULES IN THIS PACKAGE:
# - **registry.py**: static tool table and binary lookup
# - **installer.py**: per-tool install strategies (brew, pip, go, gem)
# - **monitor.py**: availability cache and coalesced installs
# - **vectors.py**: the attack vector catalog and command rendering
# - **wordlists.py**: built-in and system wordlists
# - **classifier.py**: tool output -> credentials, vulnerabilities, files
#
