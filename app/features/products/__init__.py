"""
Product catalogue feature module.

Categories and products, with every mutation gated by the grants on the
"products" module.
"""
