"""
Background jobs (run as cron entry points).
"""
