"""Exception hierarchy for zotlink.

Every error message includes: what happened, why, and what to do next.
These exceptions never escape a client operation; they are turned into
a failed :class:`~zotlink.models.Result` whose ``error`` is the message.
"""


class ZotLinkError(Exception):
    """Base class for all zotlink errors."""


class TransportError(ZotLinkError):
    """The Better BibTeX service could not be reached or answered non-2xx."""

    def __init__(self, method: str, status_code: int = 0, detail: str = ""):
        if status_code == 0:
            msg = (
                f"Could not reach Better BibTeX for '{method}'. "
                f"Make sure Zotero is running with the Better BibTeX plugin "
                f"and that the configured port is correct. {detail}"
            )
        elif status_code == 404:
            msg = (
                f"Better BibTeX returned HTTP 404 for '{method}'. "
                f"The Better BibTeX plugin may be missing or outdated. {detail}"
            )
        else:
            msg = f"Better BibTeX returned HTTP {status_code} for '{method}'. {detail}"
        super().__init__(msg.strip())
        self.method = method
        self.status_code = status_code
        self.detail = detail


class ProtocolError(ZotLinkError):
    """The response was not valid JSON or carried a JSON-RPC ``error``."""

    def __init__(self, method: str, detail: str):
        super().__init__(f"Better BibTeX rejected '{method}': {detail}")
        self.method = method
        self.detail = detail


class EmptyBibliography(ZotLinkError):
    """Better BibTeX produced an empty bibliography fragment."""

    def __init__(self):
        super().__init__(
            "Error: Received empty bibliography from Zotero. "
            "Ensure Zotero's quick copy settings are set and the selected "
            "citation style is installed."
        )


class ConfigError(ZotLinkError):
    """Configuration is missing or invalid."""

    def __init__(self, detail: str, hint: str = ""):
        msg = f"Configuration error: {detail}."
        if hint:
            msg += f" {hint}"
        super().__init__(msg)
        self.detail = detail
        self.hint = hint


class UnknownDatabase(ConfigError):
    """A database name with no default port and no explicit port."""

    def __init__(self, name: str, known: list[str]):
        super().__init__(
            f"Unknown database '{name}' and no port given",
            hint=(
                f"Use one of {', '.join(known)}, or set 'port:' in "
                f"~/.zotlink/config.yaml (ZOTLINK_PORT also works)."
            ),
        )
        self.name = name
