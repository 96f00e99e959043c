"""Example package plugin: an indexed book catalog with a search fallback."""

from launchbridge import api

from .books import BOOKS

md_iid = "3.1"
md_version = "1.0"
md_name = "Library"
md_description = "Search a small book catalog"
md_license = "MIT"
md_authors = ["@launchbridge"]


class Plugin(api.PluginInstance, api.IndexQueryHandler, api.FallbackHandler):
    def updateIndexItems(self):
        index = []
        for title, author in BOOKS:
            item = api.StandardItem(id=title.lower(), text=title, subtext=author)
            index.append(api.IndexItem(item=item, string=title))
            index.append(api.IndexItem(item=item, string=author))
        self.setIndexItems(index)

    def fallbacks(self, query):
        return [api.StandardItem(id="search", text=f"Search the library for '{query}'")]
