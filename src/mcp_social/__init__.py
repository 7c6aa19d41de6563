"""MCP Social Network - profiles, posts, follows and likes as MCP tools."""

__version__ = "0.1.0"
