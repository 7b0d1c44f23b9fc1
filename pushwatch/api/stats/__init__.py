"""Pipeline statistics resource.

Usage
-----
Import the resource for route registration::

    from pushwatch.api.stats.resources import StatsResource
"""
