"""
Storefront Core

Read-through caching, dependency invalidation and analytics aggregation for a
multi-tenant storefront builder.
"""

__version__ = "1.0.0"
