"""Applying a creative to an HTML document.

Creative CSS and JavaScript are written by project operators and run in the
visitor's browser. CSS is always applied; JavaScript only when the applier
is constructed with ``allow_scripts=True``, which is the one place that trust
decision is made.
"""
import html
import json
from typing import Any, Mapping

import structlog

logger = structlog.get_logger()

MARKER_ATTR = "data-tracklab-creative"


def _marker(abtest_id: str, creative: Mapping[str, Any]) -> str:
    return html.escape(f"{abtest_id}:{creative.get('index', 0)}", quote=True)


def _insert_before(document: str, closing_tag: str, snippet: str) -> str:
    """Insert before the first closing tag (case-insensitive), or append."""
    position = document.lower().find(closing_tag)
    if position == -1:
        return document + snippet
    return document[:position] + snippet + document[position:]


class CreativeApplier:
    """Injects one creative's CSS (and optionally JavaScript) into a page."""

    def __init__(self, allow_scripts: bool = False):
        self.allow_scripts = allow_scripts

    def apply(self, document: str, abtest_id: str, creative: Mapping[str, Any]) -> str:
        """
        Return `document` with the creative applied.

        The original creative leaves the page untouched. Applying the same
        creative twice is a no-op: the injected elements carry a marker
        attribute that is checked first.
        """
        if creative.get("isOriginal"):
            return document

        marker = _marker(abtest_id, creative)
        if f'{MARKER_ATTR}="{marker}"' in document:
            return document

        css = creative.get("css") or ""
        if css.strip():
            safe_css = css.replace("</", "<\\/")
            style = f'<style {MARKER_ATTR}="{marker}">{safe_css}</style>'
            document = _insert_before(document, "</head>", style)

        javascript = creative.get("javascript") or ""
        if javascript.strip():
            document = self._inject_operator_script(document, marker, javascript)

        return document

    def _inject_operator_script(self, document: str, marker: str, javascript: str) -> str:
        """Operator-authored code executes with the page's privileges."""
        if not self.allow_scripts:
            logger.info("creative_script_skipped", creative=marker)
            return document

        # The code travels as a JSON string and runs through Function() after
        # DOMContentLoaded, wrapped so a faulty creative cannot break the page.
        source = json.dumps(javascript).replace("</", "<\\/")
        script = (
            f'<script {MARKER_ATTR}="{marker}">(function(){{'
            f'var run=function(){{try{{new Function({source})();}}'
            f'catch(e){{console.error("[ABTest] creative script error",e);}}}};'
            f'if(document.readyState==="loading"){{document.addEventListener("DOMContentLoaded",run);}}'
            f'else{{run();}}}})();</script>'
        )
        return _insert_before(document, "</body>", script)
