import os
import re
from typing import Any, Dict, Optional

import yaml

from bulkload.utils.logging_context import get_logging_context

# Pattern to match ${VAR} or ${env:VAR}
ENV_PATTERN = re.compile(r"\$\{(?:env:)?([A-Za-z0-9_]+)\}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into base.

    Dicts merge recursively; ``mapping`` lists are appended so an imported
    file can contribute shared column mappings. Anything else is replaced.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        elif key == "mapping" and isinstance(value, list) and isinstance(result.get(key), list):
            result[key] = result[key] + value
        else:
            result[key] = value
    return result


def _substitute_env(content: str, path: str) -> str:
    ctx = get_logging_context()

    def replace_env(match):
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            ctx.error("Missing required environment variable", variable=var_name, file=path)
            raise ValueError(f"Missing environment variable: {var_name}")
        return value

    return ENV_PATTERN.sub(replace_env, content)


def load_yaml_with_env(path: str, env: Optional[str] = None) -> Dict[str, Any]:
    """Load a YAML file with environment variable substitution and imports.

    Supports:
    - ``${VAR_NAME}`` and ``${env:VAR_NAME}`` substitution
    - ``imports``: list of paths relative to the file, merged underneath it
    - ``environments``: per-environment overrides selected by ``env``

    Raises:
        FileNotFoundError: If the file (or an import) does not exist
        ValueError: If an environment variable is missing
        yaml.YAMLError: If YAML parsing fails
    """
    ctx = get_logging_context()
    ctx.debug("Loading YAML configuration", path=path, env=env)

    if not os.path.exists(path):
        raise FileNotFoundError(f"YAML file not found: {path}")

    abs_path = os.path.abspath(path)
    base_dir = os.path.dirname(abs_path)

    with open(abs_path, "r", encoding="utf-8") as f:
        content = f.read()

    try:
        data = yaml.safe_load(_substitute_env(content, abs_path)) or {}
    except yaml.YAMLError as e:
        ctx.error("YAML parsing failed", path=abs_path, error=str(e))
        raise

    imports = data.pop("imports", [])
    if isinstance(imports, str):
        imports = [imports]

    merged: Dict[str, Any] = {}
    for import_path in imports:
        full_import_path = (
            import_path if os.path.isabs(import_path) else os.path.join(base_dir, import_path)
        )
        if not os.path.exists(full_import_path):
            raise FileNotFoundError(f"Imported YAML file not found: {full_import_path}")
        ctx.debug("Merging imported configuration", import_path=full_import_path)
        merged = _deep_merge(merged, load_yaml_with_env(full_import_path, env=env))

    data = _deep_merge(merged, data) if merged else data

    environments = data.pop("environments", {}) or {}
    if env and env in environments:
        ctx.debug("Applying environment overrides", env=env)
        data = _deep_merge(data, environments[env])

    return data
