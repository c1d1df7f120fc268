"""Two-way sync between a Notion database and a Google Calendar."""

__version__ = "0.1.0"
