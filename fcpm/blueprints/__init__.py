"""
Formula Contract PM
Blueprint registry.
"""
