"""Remote MCP server exposing OpenAI text-to-speech as tools."""

__version__ = "1.0.0"
