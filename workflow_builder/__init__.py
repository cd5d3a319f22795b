"""n8n workflow builder: canonical workflow construction and n8n tool surface."""

__version__ = "0.3.0"
