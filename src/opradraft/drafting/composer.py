"""OPRA request composer: deterministic text assembly, no model calls.

The request is built as a list of ``RequestSection`` values (header,
numbered categories, optional custom blocks, closing) and then rendered.
Only the header carries the date and the request number; category bodies
and the closing boilerplate are byte-stable for identical inputs.
"""

from collections.abc import Callable
from datetime import date

from opradraft.core.categories import OpraCategory, get_categories
from opradraft.core.errors import MalformedInputError
from opradraft.core.types import (
    CategorySection,
    CustomSection,
    FooterSection,
    HeaderSection,
    RequestData,
    RequestSection,
)

BULLET = "•"
CUSTOM_PROVISIONS_TITLE = "Additional Records Based on Specific Ordinance Provisions"

CLOSING_TEXT = """\
**Time Period**: Please provide records from the past three (3) years, or since the effective date of \
the current rent control ordinance, whichever is shorter.

**Format Preference**: Electronic copies via email are preferred when available. For records that exist \
only in paper format, please advise of the cost for copies.

**Fee Waiver Request**: As this request is in the public interest and will contribute to public \
understanding of governmental operations, I request a waiver of any fees associated with this request. \
If fees cannot be waived, please inform me of the cost before processing this request if it exceeds $25.

If any portion of this request is denied, please provide the specific legal basis for each denial, as \
required by N.J.S.A. 47:1A-5(g).

I understand that a response is required within seven (7) business days pursuant to N.J.S.A. \
47:1A-5(i). If you need clarification on any aspect of this request, please contact me promptly.

Thank you for your assistance with this request.

Sincerely,

[Requestor Name]
[Contact Information]"""


def format_date(day: date) -> str:
    """US long form, e.g. "October 19, 2026"."""
    return f"{day:%B} {day.day}, {day.year}"


class RequestComposer:
    """Assemble request text from a category set and a records summary."""

    def __init__(
        self,
        categories: tuple[OpraCategory, ...] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.categories = categories if categories is not None else get_categories()
        self._by_id = {c.id: c for c in self.categories}
        self.today = today

    # -----------------------------------------------------------------------
    # Section building
    # -----------------------------------------------------------------------

    def _header(self, data: RequestData, on: date) -> str:
        municipality = data.municipality
        custodian = data.custodian
        name = custodian.name if custodian and custodian.name else "Municipal Clerk"
        title = custodian.title if custodian and custodian.title else "OPRA Custodian"
        address = custodian.address if custodian and custodian.address else f"{municipality.name}, {municipality.state}"
        email = f": {custodian.email}" if custodian and custodian.email else ""

        lines = [format_date(on)]
        if data.request_number:
            lines.append(f"Request No. {data.request_number}")
        lines += [
            "",
            name,
            title,
            f"{municipality.name} Municipality",
            address,
            "",
            f"Via Email{email}",
            "",
            "Re: OPRA Request - Rent Control Ordinance Records",
            "",
            f"Dear {name}:",
            "",
        ]
        return "\n".join(lines) + "\n"

    def _introduction(self, data: RequestData) -> str:
        code = f" ({data.ordinance.code})" if data.ordinance.code else ""
        return (
            "Pursuant to the Open Public Records Act (OPRA), N.J.S.A. 47:1A-1 et seq., I hereby request "
            "access to inspect and/or obtain copies of the following government records relating to "
            f"{data.municipality.name}'s Rent Control Ordinance{code}:\n\n"
        )

    def category_sections(self, category_ids: list[str], records_summary: dict[str, list[str]]) -> list[CategorySection]:
        """One section per known category, in the order given. Unknown ids are dropped."""
        sections = []
        for category_id in category_ids:
            category = self._by_id.get(category_id)
            if category is None:
                continue
            bullets = tuple(records_summary.get(category_id) or ())
            if not bullets:
                bullets = (f"All records related to {category.description.lower()}",)
            sections.append(CategorySection(category_id=category.id, title=category.name, bullets=bullets))
        return sections

    def compose_sections(self, data: RequestData, on: date | None = None) -> list[RequestSection]:
        """The request as an editable section list: header, categories, closing."""
        on = on or self.today()
        header = HeaderSection(text=self._header(data, on) + self._introduction(data))
        body = self.category_sections(data.selected_categories, data.records_summary)
        return [header, *body, FooterSection(text=CLOSING_TEXT)]

    # -----------------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------------

    def render_sections(self, sections: list[RequestSection]) -> str:
        """Render sections in order. Category blocks are numbered from 1."""
        parts = []
        number = 0
        for section in sections:
            if isinstance(section, HeaderSection):
                parts.append(section.text)
            elif isinstance(section, CategorySection):
                number += 1
                bullets = "".join(f"   {BULLET} {b}\n" for b in section.bullets)
                parts.append(f"{number}. **{section.title}**\n\n{bullets}\n")
            elif isinstance(section, CustomSection):
                parts.append(f"**{section.title}**:\n\n{section.body}\n\n")
            elif isinstance(section, FooterSection):
                parts.append(section.text)
            else:
                raise MalformedInputError(f"Unknown request section: {section!r}")
        return "".join(parts)

    # -----------------------------------------------------------------------
    # Variants
    # -----------------------------------------------------------------------

    def compose(self, data: RequestData, on: date | None = None) -> str:
        return self.render_sections(self.compose_sections(data, on))

    def compose_customized(self, data: RequestData, provisions: list[str], on: date | None = None) -> str:
        """Standard request plus a numbered block of ordinance-specific records before the closing."""
        sections = self.compose_sections(data, on)
        if provisions:
            body = "\n".join(f"{i}. {p}" for i, p in enumerate(provisions, start=1))
            sections.insert(len(sections) - 1, CustomSection(title=CUSTOM_PROVISIONS_TITLE, body=body))
        return self.render_sections(sections)

    def compose_focused(self, data: RequestData, focus_categories: list[str], on: date | None = None) -> str:
        """Shorter request covering only ``focus_categories``."""
        focused = RequestData(
            municipality=data.municipality,
            ordinance=data.ordinance,
            selected_categories=list(focus_categories),
            records_summary=data.records_summary,
            custodian=data.custodian,
            request_number=data.request_number,
        )
        return self.compose(focused, on)


# ---------------------------------------------------------------------------
# Section (de)serialization for the customizations column
# ---------------------------------------------------------------------------

def section_to_dict(section: RequestSection) -> dict:
    if isinstance(section, CategorySection):
        return {"kind": "category", "category_id": section.category_id,
                "title": section.title, "bullets": list(section.bullets)}
    if isinstance(section, CustomSection):
        return {"kind": "custom", "title": section.title, "body": section.body}
    return {"kind": section.kind, "text": section.text}


def section_from_dict(raw: dict) -> RequestSection:
    try:
        kind = raw["kind"]
        if kind == "header":
            return HeaderSection(text=raw["text"])
        if kind == "footer":
            return FooterSection(text=raw["text"])
        if kind == "category":
            return CategorySection(category_id=raw["category_id"], title=raw["title"], bullets=tuple(raw["bullets"]))
        if kind == "custom":
            return CustomSection(title=raw["title"], body=raw["body"])
    except (KeyError, TypeError) as e:
        raise MalformedInputError(f"Invalid request section: {raw!r}") from e
    raise MalformedInputError(f"Unknown request section kind: {kind!r}")
