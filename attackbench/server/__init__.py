# ============================================================================
# attackbench/server/__init__.py
# Server Package - FastAPI Web Server
# ============================================================================
#
# KEY ENDPOINTS:
# - GET  /tools, POST /tools/{name}/install - availability and installs
# - GET  /attacks/vectors, POST /attacks - catalog and session launch
# - POST /attacks/{id}/stop, GET /attacks/{id}/result
# - WebSocket /ws/attacks/{id} - live output by cursor
# - GET  /evidence, POST /evidence/{id}/export, DELETE /evidence/{id}?confirm=true
#
# ============================================================================
