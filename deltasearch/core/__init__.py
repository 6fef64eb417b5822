"""
Core indexing logic: change tracking, segment builds, merging and scheduling.
"""
