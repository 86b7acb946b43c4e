"""Local metadata index.

This package persists artifact records in SQLite and answers filtered,
sorted, cursor-paginated queries over them.
"""
