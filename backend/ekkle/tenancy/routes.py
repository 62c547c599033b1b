"""
Declarative classification of path prefixes.

A tenant-agnostic prefix keeps its path when reached through a church
subdomain; everything else is rewritten into the church site namespace.
The table is data handed to the resolver, so adding a section means adding
a rule here and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    tenant_agnostic: bool

    def matches(self, path: str) -> bool:
        if self.prefix == "/":
            return path in ("", "/")
        return path == self.prefix or path.startswith(self.prefix + "/")


def _validate_prefix(prefix: str) -> None:
    if not prefix or not prefix.startswith("/"):
        raise ValueError(f"Route prefix must start with '/': {prefix!r}")
    if prefix != "/" and prefix.endswith("/"):
        raise ValueError(f"Route prefix must not end with '/': {prefix!r}")


class RouteTable:
    def __init__(self, rules: Iterable[RouteRule]) -> None:
        seen: set[str] = set()
        ordered: list[RouteRule] = []
        for rule in rules:
            _validate_prefix(rule.prefix)
            if rule.prefix in seen:
                raise ValueError(f"Route prefix classified more than once: {rule.prefix}")
            seen.add(rule.prefix)
            ordered.append(rule)
        # Longest prefix first so nested rules win over their parents.
        self._rules = tuple(sorted(ordered, key=lambda r: len(r.prefix), reverse=True))

    @classmethod
    def from_mapping(cls, mapping: dict[str, bool]) -> "RouteTable":
        return cls(RouteRule(prefix=prefix, tenant_agnostic=flag) for prefix, flag in mapping.items())

    @property
    def rules(self) -> tuple[RouteRule, ...]:
        return self._rules

    def classify(self, path: str) -> Optional[RouteRule]:
        for rule in self._rules:
            if rule.matches(path):
                return rule
        return None

    def is_tenant_agnostic(self, path: str) -> bool:
        rule = self.classify(path)
        return bool(rule and rule.tenant_agnostic)

    def prefixes(self) -> set[str]:
        return {rule.prefix for rule in self._rules}


# Auth pages, API routes, the dashboard and the admin sections are served
# as-is on church subdomains. The public church site is rewritten.
DEFAULT_ROUTE_RULES: dict[str, bool] = {
    "/login": True,
    "/cadastro": True,
    "/register": True,
    "/auth": True,
    "/api": True,
    "/dashboard": True,
    "/admin": True,
    "/celulas": True,
    "/configuracoes": True,
    "/cursos": True,
    "/ebd": True,
    "/membro": True,
    "/membros": True,
    "/minha-celula": True,
    "/rede-kids": True,
    "/supervisao": True,
    "/ekkle": True,
    "/privacidade": True,
    "/termos": True,
    "/ping": True,
    "/metrics": True,
    "/docs": True,
    "/redoc": True,
    "/openapi.json": True,
    "/": False,
    "/site": False,
    "/eventos": False,
    "/sobre": False,
}

DEFAULT_ROUTE_TABLE = RouteTable.from_mapping(DEFAULT_ROUTE_RULES)


def top_level_segment(path: str) -> str:
    stripped = path.strip("/")
    if not stripped:
        return "/"
    return "/" + stripped.split("/", 1)[0]


def top_level_segments(app) -> set[str]:
    """
    Collect the first path segment of every route registered on the app.
    """
    segments: set[str] = set()
    for route in getattr(app, "routes", []):
        path = getattr(route, "path", None)
        if path is None:
            continue
        segments.add(top_level_segment(path))
    return segments


def check_route_tree(table: RouteTable, app) -> list[str]:
    """
    Return the top-level route segments the table does not classify.

    Each segment must be named by exactly one rule. Duplicates are already
    rejected by RouteTable, so only missing segments can show up here. A
    parameterised top-level segment (``/{slug}``) can never be classified
    and is always reported.
    """
    prefixes = table.prefixes()
    return sorted(segment for segment in top_level_segments(app) if segment not in prefixes)
