"""GitLab Merge Request MCP Server.

Exposes a fixed set of GitLab project, merge request and issue operations to
agents over the Model Context Protocol.
"""

__version__ = "1.0.0"
