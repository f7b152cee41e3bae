"""Module __init__: process execution and session orchestration."""
#
# MODULES IN THIS PACKAGE:
# - **runner.py**: spawns one tool in its own process group, streams its lines
# - **attack_manager.py**: runs vectors as concurrent, observable sessions
#
# WORKFLOW:
# Request -> prerequisites checked -> session registered -> runner streams
# output -> classifier extracts findings -> AttackResult -> evidence sealed
#
