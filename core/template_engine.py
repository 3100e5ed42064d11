# core/template_engine.py
"""
Secure template engine for transactional e-mail
Renders Jinja2 templates with HTML sanitization, CSS inlining and a plain
text alternative for every message
"""

import re
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from jinja2 import Environment, select_autoescape, StrictUndefined
from jinja2.exceptions import TemplateError, UndefinedError
from markupsafe import Markup
import bleach
from bleach.css_sanitizer import CSSSanitizer
import premailer
from bs4 import BeautifulSoup

from core.email_templates import LAYOUT, TEMPLATES

logger = logging.getLogger(__name__)


class TemplateRenderingError(Exception):
    """Template missing or failed to render"""


@dataclass
class RenderedEmail:
    """Result of template rendering operation"""
    subject: str
    html: str
    text: str
    size_bytes: int
    render_time_ms: float


class SecureTemplateEngine:
    """
    Template engine with XSS protection for e-mail bodies
    """

    # Email-safe HTML tags
    EMAIL_SAFE_TAGS = [
        'p', 'br', 'strong', 'em', 'b', 'i', 'u',
        'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
        'ul', 'ol', 'li', 'a', 'img',
        'table', 'thead', 'tbody', 'tr', 'td', 'th',
        'div', 'span', 'hr', 'blockquote'
    ]

    EMAIL_SAFE_ATTRIBUTES = {
        '*': ['class', 'style', 'title'],
        'a': ['href', 'title', 'rel', 'target'],
        'img': ['src', 'alt', 'width', 'height'],
        'td': ['colspan', 'rowspan', 'align', 'valign'],
        'th': ['colspan', 'rowspan', 'align', 'valign'],
    }

    def __init__(self, templates: Dict[str, Dict[str, str]] = None,
                 layout: str = LAYOUT, enable_css_inlining: bool = True):
        self.templates = templates if templates is not None else TEMPLATES
        self.enable_css_inlining = enable_css_inlining

        self.env = Environment(
            autoescape=select_autoescape(['html', 'xml'], default_for_string=True),
            undefined=StrictUndefined,  # Fail on undefined variables
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Subjects are plain text headers, never HTML
        self.subject_env = Environment(autoescape=False, undefined=StrictUndefined)
        self.layout = self.env.from_string(layout)

        self.css_sanitizer = CSSSanitizer(
            allowed_css_properties=[
                'color', 'background-color', 'font-size', 'font-weight',
                'text-align', 'margin', 'padding', 'border', 'border-left'
            ]
        )
        self.html_cleaner = bleach.Cleaner(
            tags=self.EMAIL_SAFE_TAGS,
            attributes=self.EMAIL_SAFE_ATTRIBUTES,
            protocols=['http', 'https', 'mailto'],
            css_sanitizer=self.css_sanitizer,
            strip=True,
            strip_comments=True
        )

    def has_template(self, name: str) -> bool:
        return name in self.templates

    def render(self, name: str, variables: Dict[str, Any],
               defaults: Optional[Dict[str, Any]] = None) -> RenderedEmail:
        """
        Render a named template into subject, HTML and text parts

        Args:
            name: Key into the template registry
            variables: Template variables
            defaults: Site-wide variables (company name, site url) merged underneath

        Raises:
            TemplateRenderingError: unknown template or a missing variable
        """
        start_time = datetime.now()
        spec = self.templates.get(name)
        if spec is None:
            raise TemplateRenderingError(f"Unknown e-mail template '{name}'")

        context = dict(defaults or {})
        context.update(variables or {})

        try:
            subject = self.subject_env.from_string(spec['subject']).render(**context)
            body = self.env.from_string(spec['body']).render(**context)
            body = self.html_cleaner.clean(body)
            html = self.layout.render(
                heading=spec.get('heading', subject),
                body=Markup(body),
                **{k: v for k, v in context.items() if k not in ('heading', 'body')}
            )
        except UndefinedError as e:
            raise TemplateRenderingError(f"Template variable error in '{name}': {e}")
        except TemplateError as e:
            raise TemplateRenderingError(f"Template '{name}' failed to render: {e}")

        if self.enable_css_inlining:
            html = self._inline_css(html)

        text = self._html_to_text(body)
        size = len(html.encode('utf-8')) + len(text.encode('utf-8'))
        elapsed = (datetime.now() - start_time).total_seconds() * 1000

        logger.debug(f"Template {name} rendered in {elapsed:.2f}ms, size: {size:,} bytes")
        return RenderedEmail(
            subject=' '.join(subject.split()),
            html=html,
            text=text,
            size_bytes=size,
            render_time_ms=elapsed
        )

    def _inline_css(self, html_content: str) -> str:
        """Inline CSS styles for better email client compatibility"""
        try:
            p = premailer.Premailer(
                html_content,
                remove_classes=False,
                keep_style_tags=True,
                strip_important=False,
                disable_validation=True,
                cssutils_logging_level=logging.CRITICAL,
                allow_network=False
            )
            return p.transform()
        except Exception as e:
            logger.warning(f"CSS inlining failed: {str(e)}")
            return html_content

    def _html_to_text(self, html_content: str) -> str:
        """Convert HTML to plain text for the text/plain alternative"""
        soup = BeautifulSoup(html_content, 'html.parser')

        for br in soup.find_all('br'):
            br.replace_with('\n')

        for p in soup.find_all(['p', 'div']):
            p.insert_after('\n\n')

        for li in soup.find_all('li'):
            li.insert_before('- ')
            li.insert_after('\n')

        for link in soup.find_all('a', href=True):
            link_text = link.get_text()
            href = link['href']
            if href != link_text:
                link.replace_with(f"{link_text} ({href})")

        text = soup.get_text()
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r'\n\s*\n+', '\n\n', text)
        return text.strip()
