# =============================================================================
# personio/__init__.py
# =============================================================================
# This package is the upstream access-control plane for the Personio API:
# credentials, throttling, caching, error normalization and dispatch.
#
# ARCHITECTURAL RULE:
#   Nothing in this package imports FastMCP.  The MCP surface lives in
#   personio_mcp/ and talks to this package only through
#   RequestDispatcher.execute(operation_name, params).
#
# LAYERS (bottom-up):
#   models, errors, config   plain data and the error taxonomy
#   cache, throttle          in-process state shared by every call
#   auth, client             the only code that talks HTTP
#   operations/              one handler per logical operation
#   dispatcher, context      wiring and lifecycle
# =============================================================================
