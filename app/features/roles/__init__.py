"""
Role management feature module.

Roles group users and carry per-module permission grants.
"""
