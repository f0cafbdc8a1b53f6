"""
Secret lookup shared by the settings module.

Values come from the environment first, then from a Docker/Kubernetes secret
file mounted under SECRETS_DIR (one file per secret, named after the key).
"""
import os

SECRETS_DIR = os.getenv("SECRETS_DIR", "/run/secrets")


def get_secret(name: str, default: str = None) -> str:
    """
    Resolve a configuration value by name.

    Args:
        name: Environment variable / secret file name.
        default: Returned when neither source defines the value.

    Returns:
        The secret value with surrounding whitespace removed, or the default.
    """
    value = os.getenv(name)
    if value is not None:
        return value.strip()

    secret_path = os.path.join(SECRETS_DIR, name)
    if os.path.isfile(secret_path):
        with open(secret_path, "r") as f:
            return f.read().strip()

    return default
