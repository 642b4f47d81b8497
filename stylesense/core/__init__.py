"""
Settings, feature flags and infrastructure clients.
"""
