"""Ekkle: church-scoped request routing, rate limiting and live stream webhooks."""
