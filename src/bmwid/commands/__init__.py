"""Built-in CLI sub-commands for bmwid.

* :mod:`~bmwid.commands.auth` -- ``login``, ``token`` and ``logout``,
  registered directly on the root app.
* :mod:`~bmwid.commands.config` -- the ``config`` group for viewing and
  changing settings.
"""
