"""Host-native interfaces implemented by bridged extensions."""

from .extensions import (
    Extension,
    FallbackHandler,
    GeneratorQueryHandler,
    GlobalQueryHandler,
    IndexQueryHandler,
    PluginInstance,
    QueryHandler,
    RankedQueryHandler,
)
from .items import Action, IndexItem, Item, RankItem, StandardItem
from .query import Match, MatchConfig, Matcher, Query

__all__ = [
    "Action",
    "Extension",
    "FallbackHandler",
    "GeneratorQueryHandler",
    "GlobalQueryHandler",
    "IndexItem",
    "IndexQueryHandler",
    "Item",
    "Match",
    "MatchConfig",
    "Matcher",
    "PluginInstance",
    "Query",
    "QueryHandler",
    "RankItem",
    "RankedQueryHandler",
    "StandardItem",
]
