import re
from typing import Tuple

from credmail.core.models import EmailTemplate, RenderContext


TOKEN_PATTERN = re.compile(r"{{([^}]*)}}")


def _resolve(expression: str, context: RenderContext) -> str:
    """Return the first non-empty value among the ``||``-separated candidates."""
    for candidate in expression.split("||"):
        value = context.get(candidate.strip())
        if value:
            return value
    return ""


def render(template: str, context: RenderContext) -> str:
    """
    Substitute ``{{token}}`` and ``{{a || b}}`` expressions.

    Unknown or empty tokens become an empty string. Substituted values are
    inserted verbatim and are not scanned again.

    Args:
        template: Template text
        context: Token values for one recipient

    Returns:
        Rendered text
    """
    if not template:
        return ""
    return TOKEN_PATTERN.sub(lambda match: _resolve(match.group(1), context), template)


def render_template(template: EmailTemplate, context: RenderContext) -> Tuple[str, str]:
    """Render subject and body, each trimmed."""
    subject = render(template.subject, context).strip()
    body = render(template.body, context).strip()
    return subject, body
