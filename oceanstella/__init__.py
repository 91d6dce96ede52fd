"""
Ocean Stella - Site Backend

Authentication and session core for the Ocean Stella commerce/content site.
"""

__version__ = "0.1.0"
