"""Built-in CLI sub-commands for ocalogin.

This package groups the Typer sub-command modules that form the CLI's
command tree:

* :mod:`~ocalogin.commands.auth` -- sign in, sign out, status and model choice.
* :mod:`~ocalogin.commands.catalog` -- list models and knowledge bases.
* :mod:`~ocalogin.commands.config` -- view and modify global settings.
* :mod:`~ocalogin.commands.callback` -- run the redirect listener on its own.

Each module exports a :class:`typer.Typer` sub-application registered on
the root app in :mod:`ocalogin.app`.
"""
