"""
Typed document access core: record schemas, field paths, conversion,
query and update builders, and the collection accessor base.
"""
