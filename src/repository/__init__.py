"""Repository coordination layer.

This package composes the remote ledger and the local record store into
upload-then-index writes and version-aware reads.
"""
