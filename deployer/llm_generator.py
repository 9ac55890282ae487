"""
llm_generator.py
----------------
- Uses the OpenAI Python client against an OpenAI-compatible endpoint (AI Pipe by default).
- Round 1 prompt: build a single-file index.html plus README from a brief.
- Round 2 prompt: revise the existing index.html for a new brief.
- Splits the reply on the README separator; falls back to a synthesized README.
"""

import logging
from datetime import date
from typing import List, Optional, Sequence

from openai import OpenAI

from .models import Attachment, GeneratedContent
from .settings import settings

logger = logging.getLogger(__name__)

README_SEPARATOR = "---README.md---"
_FENCE_LANGUAGES = ("html", "markdown", "md")


class ContentGenerationError(RuntimeError):
    pass


# -----------------------------------------------------------
# Output parsing
# -----------------------------------------------------------
def strip_code_block(text: str) -> str:
    """Return the body of the first ``` fenced block, minus an html/markdown tag line."""
    if "```" not in text:
        return text.strip()

    parts = text.split("```")
    inner = parts[1].strip()
    if "\n" in inner:
        first_line, rest = inner.split("\n", 1)
        if first_line.strip().lower() in _FENCE_LANGUAGES:
            inner = rest.strip()
    return inner


def strip_outer_fence(text: str) -> str:
    """
    Unwrap text only when the whole of it sits inside a ``` fence.
    Fenced examples inside an otherwise plain document are left alone.
    """
    body = text.strip()
    if not body.startswith("```"):
        return body
    if "\n" not in body:
        return body.strip("`").strip()
    _, rest = body.split("\n", 1)
    rest = rest.rstrip()
    if rest.endswith("```"):
        rest = rest[:-3]
    return rest.strip()


def fallback_readme(brief: str, today: Optional[date] = None) -> str:
    generated_on = (today or date.today()).isoformat()
    return f"""# Application

## Summary
{brief}

## Setup
Open `index.html` in a web browser.

## License
MIT License

---
*Generated on {generated_on}*
"""


def split_response(raw: str, brief: str, today: Optional[date] = None) -> GeneratedContent:
    if README_SEPARATOR in raw:
        html_part, readme_part = raw.split(README_SEPARATOR, 1)
        content = strip_code_block(html_part)
        description = strip_outer_fence(readme_part)
        logger.info(
            "Split response into HTML (%s chars) and README (%s chars)", len(content), len(description)
        )
        return GeneratedContent(content=content, description=description)

    logger.warning("Response did not contain %s separator, using fallback README", README_SEPARATOR)
    return GeneratedContent(content=strip_code_block(raw), description=fallback_readme(brief, today))


# -----------------------------------------------------------
# Prompts
# -----------------------------------------------------------
def _attachments_info(attachments: Sequence[Attachment]) -> str:
    if not attachments:
        return ""
    return "\n\nAttachments:\n" + "\n".join(f"- {a.name}: {a.url}" for a in attachments)


_README_SECTIONS = """- Project title
- Summary of what the app does (based on actual code)
- Key features (list what's actually implemented)
- Setup instructions
- Usage instructions
- Technical details (HTML/CSS/JS structure)"""


def build_prompt(
    brief: str,
    attachments: Sequence[Attachment] = (),
    existing_content: Optional[str] = None,
    today: Optional[date] = None,
) -> str:
    info = _attachments_info(attachments)
    if existing_content:
        return f"""You are a professional web developer assistant.

### Task: Round 2 - Code Revision
Update the existing application to satisfy this new requirement: {brief}

### Current Code:
{existing_content}
{info}

### Output Format (CRITICAL):
You must output TWO parts separated by exactly this line: {README_SEPARATOR}

1. First part: Complete updated HTML file (index.html) with all HTML, CSS, and JavaScript
2. Separator: {README_SEPARATOR}
3. Second part: Updated README.md that describes the NEW features and changes made in Round 2

The README must include:
{_README_SECTIONS}
- Changes made in Round 2
- Deployment info (GitHub Pages)
- License (MIT)

Output format:
<your complete HTML code here>

{README_SEPARATOR}
<your complete README.md here>
"""

    generated_on = (today or date.today()).isoformat()
    return f"""You are a professional web developer assistant.

### Task: Round 1 - New Application
Create a fully functional single-file HTML web application based on this brief:

{brief}
{info}

### Requirements:
- Create a complete, self-contained HTML file (index.html)
- Include all HTML, CSS (in <style> tags), and JavaScript (in <script> tags) in one file
- The application should be fully functional and ready to deploy
- Make it visually appealing and user-friendly

### Output Format (CRITICAL):
You must output TWO parts separated by exactly this line: {README_SEPARATOR}

1. First part: Complete HTML file (index.html)
2. Separator: {README_SEPARATOR}
3. Second part: Professional README.md

The README must include:
{_README_SECTIONS}
- Deployment info (GitHub Pages)
- License (MIT)
- Generated date: {generated_on}

Output format:
<your complete HTML code here>

{README_SEPARATOR}
<your complete README.md here>
"""


# -----------------------------------------------------------
# Generator
# -----------------------------------------------------------
class ContentGenerator:
    def __init__(self, client=None, model: Optional[str] = None, temperature: Optional[float] = None):
        self._client = client
        self.model = model or settings.AIMODEL_NAME
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature

    @property
    def client(self):
        if self._client is None:
            self._client = OpenAI(api_key=settings.OPENAI_API_KEY, base_url=settings.OPENAI_BASE_URL)
        return self._client

    def generate(
        self,
        brief: str,
        attachments: Optional[List[Attachment]] = None,
        existing_content: Optional[str] = None,
    ) -> GeneratedContent:
        """Generate index.html + README.md for brief, revising existing_content when given."""
        prompt = build_prompt(brief, attachments or [], existing_content)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        except Exception as exc:
            logger.exception("LLM call via OpenAI SDK failed: %s", exc)
            raise ContentGenerationError(f"OpenAI API error: {exc}") from exc

        raw = ""
        if getattr(response, "choices", None):
            raw = response.choices[0].message.content or ""
        if not raw.strip():
            raise ContentGenerationError("OpenAI API error: empty response")
        return split_response(raw, brief)
