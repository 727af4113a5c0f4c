"""
Core package for shared utilities: settings, logging and security helpers.
"""
