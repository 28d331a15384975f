"""
Shared data structures, statistics and configuration helpers
"""
