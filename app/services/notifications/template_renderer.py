import re
from typing import Any, Iterable, Mapping, Optional, Set

from app.db.models import CommunicationTemplate
from app.utils.logging import get_logger

from .contracts import RenderedMessage

logger = get_logger()

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_CONDITIONAL_RE = re.compile(
    r"\{\{#if\s+([A-Za-z_][A-Za-z0-9_]*)\s*\}\}(.*?)\{\{/if\}\}", re.DOTALL
)


class TemplateRenderer:
    """
    Substitutes ``{{name}}`` placeholders and ``{{#if name}}...{{/if}}`` blocks.

    Rendering never raises. A placeholder with no matching variable is left in
    the output verbatim; a ``None`` value renders as an empty string. Mismatches
    against the template's declared variables are logged as warnings only.
    """

    def render(
        self,
        subject: str,
        body: str,
        variables: Mapping[str, Any],
        declared: Optional[Iterable[str]] = None,
        template_name: Optional[str] = None,
    ) -> RenderedMessage:
        if declared is not None:
            self._warn_on_mismatch(
                subject + body, variables, set(declared), template_name
            )
        return RenderedMessage(
            subject=self.render_text(subject, variables),
            body=self.render_text(body, variables),
        )

    def render_template(
        self, template: CommunicationTemplate, variables: Mapping[str, Any]
    ) -> RenderedMessage:
        return self.render(
            template.subject,
            template.body,
            variables,
            declared=template.variables or [],
            template_name=template.name,
        )

    def render_text(self, text: str, variables: Mapping[str, Any]) -> str:
        if not text:
            return ""

        def _conditional(match: re.Match) -> str:
            return match.group(2) if variables.get(match.group(1)) else ""

        def _placeholder(match: re.Match) -> str:
            name = match.group(1)
            if name not in variables:
                return match.group(0)
            value = variables[name]
            return "" if value is None else str(value)

        text = _CONDITIONAL_RE.sub(_conditional, text)
        return _PLACEHOLDER_RE.sub(_placeholder, text)

    @staticmethod
    def placeholders(text: str) -> Set[str]:
        """Names referenced by placeholders and conditional blocks."""
        names = set(_PLACEHOLDER_RE.findall(text or ""))
        names.update(name for name, _ in _CONDITIONAL_RE.findall(text or ""))
        return names

    def _warn_on_mismatch(
        self,
        text: str,
        variables: Mapping[str, Any],
        declared: Set[str],
        template_name: Optional[str],
    ) -> None:
        label = template_name or "inline"
        undeclared = self.placeholders(text) - declared
        if undeclared:
            logger.warning(
                f"Template {label} uses undeclared variables: {sorted(undeclared)}"
            )
        missing = declared - set(variables)
        if missing:
            logger.warning(
                f"Template {label} rendered without variables: {sorted(missing)}"
            )
