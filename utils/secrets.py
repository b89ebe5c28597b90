import logging
import os

from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient

# Simple in-process cache for secrets
_SECRET_CACHE: dict[str, str] = {}


def get_secret(name: str, default: str | None = None) -> str | None:
    """
    Return secret value from environment if present; otherwise fetch from Azure Key Vault.
    Falls back to `default` if neither source is available. Values are cached per-process.
    Supports KV names that disallow underscores by trying hyphenated variants.
    """
    # 1) Env precedence (easy local override for dev/testing)
    if os.getenv(name):
        return os.environ[name]

    # 2) Cache
    if name in _SECRET_CACHE:
        return _SECRET_CACHE[name]

    # 3) Azure Key Vault (only when a vault is configured)
    vault_url = os.getenv("KEY_VAULT_URL", "")
    if vault_url:
        lookup_names = [name]
        # Azure KV secret names cannot contain underscores
        if "_" in name:
            lookup_names.append(name.replace("_", "-"))
        try:
            client = SecretClient(vault_url=vault_url, credential=DefaultAzureCredential())
            for kv_name in lookup_names:
                try:
                    secret = client.get_secret(kv_name)
                except Exception as e:
                    logging.debug("Secrets: '%s' not readable from Key Vault: %s", kv_name, e)
                    continue
                if isinstance(secret.value, str):
                    _SECRET_CACHE[name] = secret.value
                    return secret.value
        except Exception as e:
            logging.warning("Secrets: failed to fetch '%s' from Key Vault: %s", name, e)

    # 4) Fallback
    return default
