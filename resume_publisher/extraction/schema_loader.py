import json
from pathlib import Path
from typing import Any

from resume_publisher.exceptions import ConfigurationError

_DEFAULT_SCHEMA_DIR = Path(__file__).parent / "schemas"


def load_extraction_schema(path: Path | None = None) -> dict[str, Any]:
    """Load the target JSON schema sent with every extraction job.

    Args:
        path: Path to the JSON schema file.
              Defaults to the bundled resume_extraction_schema.json.

    Raises:
        ConfigurationError: if the file cannot be read or is not a JSON object.
    """
    if path is None:
        path = _DEFAULT_SCHEMA_DIR / "resume_extraction_schema.json"
    try:
        schema = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to load extraction schema: {exc}") from exc
    if not isinstance(schema, dict):
        raise ConfigurationError("Extraction schema must be a JSON object")
    return schema
