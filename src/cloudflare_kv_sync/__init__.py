"""Sync frontmatter-tagged Markdown documents to Cloudflare Workers KV."""

__version__ = "1.2.0"
