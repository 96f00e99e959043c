"""Example Python plugin for launchbridge: greets whatever follows the trigger."""

from launchbridge import api

md_iid = "3.1"
md_version = "1.0"
md_name = "Hello"
md_description = "Greets whatever you type"
md_license = "MIT"
md_authors = ["@launchbridge"]


class Plugin(api.PluginInstance, api.GeneratorQueryHandler):
    def defaultTrigger(self):
        return "hello "

    def synopsis(self, query):
        return "<name>"

    def items(self, query):
        name = query.string.strip() or "world"
        greeting = self.readConfig("greeting", str) or "Hello"
        debug(f"greeting {name}")  # noqa: F821 - injected by the loader

        def remember():
            self.writeConfig("last_name", name)

        yield [
            api.StandardItem(
                id="greeting",
                text=f"{greeting}, {name}!",
                subtext="Remember this name",
                actions=[api.Action("remember", "Remember", remember)],
            )
        ]
