"""
Common utilities and configurations for Huddle services.
"""
