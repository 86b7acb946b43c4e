"""Remote ledger collaborators.

This package holds the write-sink protocol, the wire tag vocabulary,
a filesystem ledger for local use, and the remote query gateway client.
"""
