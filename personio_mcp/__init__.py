# =============================================================================
# personio_mcp/__init__.py
# =============================================================================
# This package contains the FastMCP surface of the Personio server.
#
# ARCHITECTURAL ROLE:
#   personio_mcp/ is the "translation layer" between MCP clients and the
#   personio core.  server.py:
#     1. Registers one FastMCP tool per write/read operation
#     2. Registers the personio:// resources and the two prompts
#     3. Forwards every call to RequestDispatcher.execute()
#     4. Converts PersonioError into ToolError / ResourceError text
#
# WHAT THIS PACKAGE DOES NOT DO:
#   - No validation, caching or throttling (that's in personio/)
#   - No HTTP (only personio/auth.py and personio/client.py talk to Personio)
# =============================================================================
