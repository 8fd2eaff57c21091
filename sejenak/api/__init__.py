"""
API blueprints for Sejenak.
"""
