import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from credmail.core.config import load_config
from credmail.core.models import EmailSettings

logger = logging.getLogger(__name__)

EMAIL_SETTINGS_KEY = "emailSettings"


def load_email_settings(path: Optional[Union[str, Path]] = None) -> Optional[EmailSettings]:
    """
    Load the email delivery section of the settings document.

    Args:
        path: Settings JSON file. If None, uses SETTINGS_PATH or the bundled default

    Returns:
        EmailSettings parsed from the document, defaults when the document has no
        email section, or None when no usable document exists
    """
    settings_path = Path(path) if path is not None else Path(load_config().settings_path)
    if not settings_path.exists():
        return None

    try:
        with open(settings_path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (json.JSONDecodeError, IOError) as exc:
        logger.warning("Settings document %s is unreadable: %s", settings_path, exc)
        return None

    if not isinstance(document, dict):
        return None

    section = document.get(EMAIL_SETTINGS_KEY)
    if section is None:
        return EmailSettings()

    try:
        return EmailSettings.model_validate(section)
    except ValidationError as exc:
        logger.warning("Email settings in %s are invalid: %s", settings_path, exc)
        return None
