"""Where mudwatch looks for its config file and puts its database.

A checkout keeps both side by side (``./mudwatch.toml``,
``./data/mudwatch.db``); an installed daemon reads
``/etc/mudwatch/mudwatch.toml`` and writes ``/var/lib/mudwatch/``.
"""

import os

ETC_DIR = "/etc/mudwatch"
VAR_DIR = "/var/lib/mudwatch"


def resolve_config(name: str) -> str:
    """Return the absolute path of config *name*.

    A path is taken as given; a bare filename is tried in the current
    directory, then in ``ETC_DIR``.

    Raises:
        FileNotFoundError: Naming every place that was tried.
    """
    if os.sep in name:
        candidates = [name]
    else:
        candidates = [name, os.path.join(ETC_DIR, name)]

    for candidate in candidates:
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)

    raise FileNotFoundError(
        "config file not found: %s"
        % ", ".join(os.path.abspath(c) for c in candidates)
    )


def resolve_db(config_path: str, db_name: str) -> str:
    """Place the ``db`` key's file for a config loaded from *config_path*.

    ``":memory:"`` and absolute paths pass through, which is what the
    tests and one-off ``--once`` runs use.
    """
    if db_name == ":memory:" or os.path.isabs(db_name):
        return db_name
    config_dir = os.path.dirname(config_path)
    if config_dir.startswith(ETC_DIR):
        return os.path.join(VAR_DIR, db_name)
    return os.path.join(config_dir, "data", db_name)
