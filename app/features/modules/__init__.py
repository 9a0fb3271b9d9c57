"""
Module tree feature module.

Modules are the navigable folders, pages and dashboards of the admin UI.
"""
