"""Configuration commands for pm-assistant CLI."""

from cyclopts import App

from pm_assistant.config import JIRA_SETTING_SOURCES, get_config, load_jira_settings

config_app = App(name="config", help="Manage configuration")

SECRET_KEYS = frozenset({"jira.api_token"})


def _display(key: str, value: object) -> str:
    """Mask secrets so tokens never end up in terminal scrollback."""
    if key in SECRET_KEYS and value:
        text = str(value)
        return f"{text[:4]}…" if len(text) > 8 else "****"
    return str(value)


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: Configuration key, e.g. jira.base_url
        value: Configuration value
        global_: If True, set in global config. If False, set in local config.
    """
    config = get_config(use_global=global_)
    config.set(key, value)
    scope = "global" if global_ else "local"
    print(f"Set {key} = {_display(key, value)} ({scope})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Unset a configuration setting."""
    config = get_config(use_global=global_)
    config.unset(key)
    scope = "global" if global_ else "local"
    print(f"Unset {key} ({scope})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Get the value of a configuration setting."""
    value = get_config(use_global=global_).get(key)
    if value is None:
        print(f"{key} is not set")
    else:
        print(f"{key} = {_display(key, value)}")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List all configuration settings."""
    settings = get_config(use_global=global_).list()

    if not settings:
        scope = "global" if global_ else "local"
        print(f"No {scope} configuration settings")
        return

    scope = "Global" if global_ else "Configuration"
    print(f"{scope} settings:\n")
    for key, value in settings.items():
        print(f"{key} = {_display(key, value)}")


@config_app.command
def check() -> None:
    """Report which Jira connection settings are still missing."""
    missing = load_jira_settings(get_config()).missing_fields()
    if not missing:
        print("Jira connection settings are complete")
        return

    print("Missing Jira settings:\n")
    for name in missing:
        env_var, config_key = JIRA_SETTING_SOURCES[name]
        print(f"  {name}: export {env_var}=... or pma config set {config_key} <value>")
