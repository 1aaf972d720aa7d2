"""
Payment provider integrations.
"""
