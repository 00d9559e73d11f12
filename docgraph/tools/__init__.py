"""
Command line tools for DocGraph.

- schema_cli: Schema snapshot, compatibility check and provisioning
"""
