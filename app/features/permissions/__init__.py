"""
Permission management feature module.

Resolves (user, module, action) access from role grants and per-user
overrides, builds each user's navigation tree and edits grants in bulk.
"""
