"""
db/ - Database Layer
====================
Handles PostgreSQL connections, the query executor the repositories run
their SQL through, and schema bootstrap.
This layer is the lowest in the architecture and has no dependencies on other layers.
"""
