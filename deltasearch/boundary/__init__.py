"""
Boundary layer: relational record store and segment storage adapters.
"""
