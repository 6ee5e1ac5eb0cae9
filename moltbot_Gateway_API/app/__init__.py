"""
App package initializer for the moltbot gateway supervisor.
"""
