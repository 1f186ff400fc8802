"""
Prompt engine with an externalized template system.

Templates are Jinja2 strings. Built-in defaults are embedded below; any
`<name>.j2` (or `.jinja2`, `.txt`) file in the prompts directory overrides the
built-in template of the same name, so wording can be tuned without code
changes.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional

from jinja2 import BaseLoader, Environment

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other_financial"

CATEGORY_NAMES = {
    "credit_card": "Credit Card",
    "bank_alert": "Banking",
    "loan": "Loans & EMIs",
    "investment": "Investments",
    "insurance": "Insurance",
    "tax": "Tax",
    "salary": "Salary",
    "payment_app": "Payment Apps",
    "other_financial": "Other Financial",
}

BODY_PREVIEW_CHARS = 300


class PromptEngine:
    """
    Template-based prompt engine.

    Features:
    - Jinja2 templates for flexible prompt formatting
    - Custom overrides loaded from a directory
    - Embedded defaults, no file dependencies
    """

    DEFAULT_TEMPLATES = {
        "system": """You are LedgerClaw, a careful personal finance assistant.
You read the user's financial emails and report only what is stated in them.
Never invent amounts, dates or account numbers.""",

        "classify_senders": """Below is a numbered list of email sender addresses from one person's inbox.
Decide for each sender whether it sends financial mail: banks, credit cards,
loans and EMIs, investments and brokers, insurance, tax authorities, payroll,
payment apps.

{{ sender_list }}

Respond with JSON only, in this exact shape:
{"financial": ["address", ...], "non_financial": ["address", ...], "uncertain": ["address", ...]}
Copy addresses exactly as given. Every address must appear in exactly one list.""",

        "extract_keywords": """Below are subject lines of financial emails from one person's inbox.

{{ subject_lines }}

Extract short phrases that identify financial mail for this person.
- subject_keywords: phrases that appear in subject lines (e.g. "statement", "emi due")
- body_keywords: phrases likely to appear in the email bodies (e.g. "available balance")
Prefer specific phrases over generic words. Lowercase everything.

Respond with JSON only:
{"subject_keywords": ["..."], "body_keywords": ["..."]}""",

        "briefing": """Write the financial briefing for {{ period_description }}.
Today is {{ day }}, {{ date }}.

Financial emails received in this period, grouped by category:

{{ financial_emails }}

Format the briefing as:
1. A two-line overview.
2. One short section per category with the key facts (amounts, balances, due dates).
3. A section titled "Actions Required" listing what the user must do, one item per line:
   - 🔴 for urgent items (due within 2 days or overdue)
   - 🟡 for items due this week
   - 🟢 for informational items
   Write "due <date>" when a due date is known. If nothing needs doing, write "No actions required".""",

        "consolidate": """Below are partial financial briefings covering {{ period_description }}.
Today is {{ day }}, {{ date }}.

{{ partial_summaries }}

Consolidate them into one cohesive briefing. Merge duplicate facts, keep every
amount and due date, and end with a single "Actions Required" section using the
🔴 / 🟡 / 🟢 markers.""",
    }

    def __init__(self, templates_dir: Optional[str] = None):
        """
        Initialize prompt engine.

        Args:
            templates_dir: Optional directory for custom templates
        """
        self.templates_dir = templates_dir
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

        self._custom_templates: Dict[str, str] = {}
        if templates_dir and os.path.isdir(templates_dir):
            self._load_custom_templates(templates_dir)

    def _load_custom_templates(self, templates_dir: str) -> None:
        """Load custom templates from directory."""
        for filename in sorted(os.listdir(templates_dir)):
            if not filename.endswith((".j2", ".jinja2", ".txt")):
                continue
            name = os.path.splitext(filename)[0]
            path = os.path.join(templates_dir, filename)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    self._custom_templates[name] = f.read()
                logger.debug(f"Loaded custom template: {name}")
            except OSError as e:
                logger.warning(f"Failed to load custom template {path}: {e}")

    def get_template(self, template_name: str) -> str:
        """
        Get a template by name, custom override first.

        Raises:
            ValueError: If no template with that name exists
        """
        if template_name in self._custom_templates:
            return self._custom_templates[template_name]
        if template_name in self.DEFAULT_TEMPLATES:
            return self.DEFAULT_TEMPLATES[template_name]
        raise ValueError(f"Template not found: {template_name}")

    def render(self, template_name: str, **context) -> str:
        """Render a template with the given context variables."""
        template = self._env.from_string(self.get_template(template_name))
        return template.render(**context).strip()

    def get_system_prompt(self) -> str:
        return self.render("system")

    @property
    def custom_templates(self) -> List[str]:
        return sorted(self._custom_templates)


def numbered_list(items: Iterable[str]) -> str:
    """Format items as a 1-based numbered list, one per line."""
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def format_messages_for_prompt(messages) -> str:
    """
    Format messages grouped by category into a text block for the briefing prompt.

    Each message needs `sender`, `sender_name`, `subject`, `body_text` and
    `category` attributes. Categories keep first-seen order.
    """
    grouped: Dict[str, list] = {}
    for message in messages:
        grouped.setdefault(message.category or DEFAULT_CATEGORY, []).append(message)

    sections = []
    for category, items in grouped.items():
        lines = [f"### {CATEGORY_NAMES.get(category, category)}"]
        for m in items:
            lines.append(f"- From: {m.sender_name or m.sender}")
            lines.append(f"  Subject: {m.subject}")
            body = (m.body_text or "")[:BODY_PREVIEW_CHARS].strip()
            if body:
                lines.append(f"  Body: {body}")
            lines.append("")
        sections.append("\n".join(lines))

    return "\n".join(sections).strip()
