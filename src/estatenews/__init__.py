"""estatenews: automated real-estate news desk.

Discovers candidate stories, synthesizes them into published articles
and notifies subscribers by email.
"""

__version__ = "0.1.0"
