from pathlib import Path

from disclosure_worker.extraction.exceptions import ExtractionError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"
SUMMARY_PROMPT_PATH = _DEFAULT_PROMPT_DIR / "summary_prompt.txt"
SUMMARY_SCHEMA_PATH = _DEFAULT_PROMPT_DIR / "summary_schema.json"


def load_prompt_template(path: Path | None = None) -> str:
    """Load the extraction prompt from a file.

    Args:
        path: Path to the prompt file.
              Defaults to the bundled extraction_prompt.txt.

    Raises:
        ExtractionError: if the file cannot be read.
    """
    if path is None:
        path = _DEFAULT_PROMPT_DIR / "extraction_prompt.txt"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExtractionError(f"Failed to load prompt template: {exc}") from exc


def load_json_schema(path: Path | None = None) -> str:
    """Load the structured-output JSON schema from a file.

    Args:
        path: Path to the JSON schema file.
              Defaults to the bundled extraction_schema.json.

    Raises:
        ExtractionError: if the file cannot be read.
    """
    if path is None:
        path = _DEFAULT_PROMPT_DIR / "extraction_schema.json"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExtractionError(f"Failed to load JSON schema: {exc}") from exc
