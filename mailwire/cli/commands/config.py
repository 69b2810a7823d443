"""Config command: inspect and change persistent settings."""

import json

from mailwire.utils.console import print_info, print_success

from .base import BaseCommandHandler, CommandResult

# Settings holding lists; given on the command line as comma separated values
LIST_KEYS = {"smtp.recipients"}


class ConfigCommand(BaseCommandHandler):
    """Handle 'config list|get|set|reset'."""

    def execute(self, args) -> CommandResult:
        manager = self.config_manager
        command = args.config_command

        if command == "list":
            data = manager.config.model_dump()
            if data["pop3"].get("password"):
                data["pop3"]["password"] = "***"
            print_info(json.dumps(data, indent=2), self.console)
            return CommandResult(success=True, data=data)

        if command == "get":
            value = manager.get_config(args.key)
            print_info(f"{args.key} = {value!r}", self.console)
            return CommandResult(success=True, data=value)

        if command == "set":
            value = args.value
            if args.key in LIST_KEYS:
                value = [part.strip() for part in value.split(",") if part.strip()]
            manager.set_config(args.key, value)
            print_success(f"{args.key} updated", self.console)
            return CommandResult(success=True, data=manager.get_config(args.key))

        manager.reset_to_defaults()
        print_success("Configuration reset to defaults", self.console)
        return CommandResult(success=True)
