# Routes package init
"""
Edge Proxy - Routes Package
=============================

Route Inventory:
    - health.py:  /health           (synthetic, answered by the proxy)
    - proxy.py:   /api/{path}       (cache lookup, then relay to origin)

Every other path falls through to the 404 handler in main.py.
"""
