"""Prompt registry of versioned prompts for MLflow tracking.

Keeps prompt strings in one versionable module so that:
1. Each run can log the exact prompt used as an MLflow artifact
2. Prompt variants can be compared across experiments
3. Prompts are decoupled from pipeline code

Templates use ``str.format`` placeholders; callers fill them in.
"""

import logging

from opradraft.observability.tracing import log_text, set_tag

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt versions
# ---------------------------------------------------------------------------

RESEARCH_SYSTEM_PROMPT_V1 = """\
You are a municipal ordinance research assistant specializing in {state} municipalities. \
When searching for ordinances, you MUST verify the municipality is in {state} and not in any \
other state. Always cite your sources with specific URLs from official sources like \
ecode360.com, municode.com, or official .gov websites. Never return results from \
municipalities in other states.\
"""

ANSWER_QUESTION_PROMPT_V1 = """\
Find the full text of the rent control (rent stabilization) ordinance for {municipality}{county_clause}, \
{state}. Quote the ordinance text verbatim, including section numbers and headings, as it \
appears in the municipal code. Cite the URL of the official code publisher or municipal website \
you quoted from. If you cannot find the ordinance for this exact municipality in {state}, say so \
plainly instead of describing a different municipality.\
"""

ORDINANCE_CHECK_SYSTEM_V1 = "You are an expert at identifying and extracting municipal ordinance text."

ORDINANCE_CHECK_PROMPT_V1 = """\
Analyze this content and determine if it contains a rent control ordinance for \
{municipality}, {county_or_state}.

Content from {url}:
{content}

If this is a rent control ordinance, respond with "VALID_ORDINANCE".
If not, explain what the content actually is.\
"""

CONTENT_VALIDATION_PROMPT_V1 = """\
You are validating text returned by a research engine. Decide whether it contains actual \
rent control ordinance text (codified sections with operative language such as "shall") \
for {municipality}, {state}, as opposed to a summary, a list of search results, a news \
article, or an ordinance from a different municipality or state.

Text:
{content}

Respond with JSON: {{"is_valid": true|false, "confidence": "high"|"medium"|"low", "analysis": "..."}}\
"""

SECTION_ANALYSIS_PROMPT_V1 = """\
Analyze this rent control ordinance section and determine which OPRA record categories are relevant.

Section Content:
{section}

Available OPRA Categories:
{categories}

Analyze the section and determine:
1. Which OPRA categories this section relates to (with relevance level high, medium, or low)
2. Key provisions that would trigger records requests
3. Whether it mentions a rent control board
4. Whether it describes a complaint process
5. Whether it includes enforcement mechanisms

Focus on identifying concrete records that would exist based on this section.

Respond with JSON matching:
{{"relevant_categories": [{{"category_id": "...", "relevance": "high|medium|low", "reason": "..."}}],
  "key_provisions": ["..."], "has_rent_control_board": bool, "has_complaint_process": bool,
  "has_enforcement_mechanism": bool}}\
"""

RECORDS_SUMMARY_PROMPT_V1 = """\
Based on the following ordinance sections, generate a specific list of records to request \
under the "{category_name}" category.

Category Description: {category_description}

Relevant Ordinance Sections:
{context}

Generate 3-5 specific record types that would exist based on these ordinance provisions. \
Be specific and reference the ordinance requirements where applicable.

Respond with JSON: {{"records": ["...", "..."]}}\
"""


# ---------------------------------------------------------------------------
# Registry: name → (version_tag, prompt_text)
# ---------------------------------------------------------------------------

_PROMPT_REGISTRY: dict[str, tuple[str, str]] = {
    "research_system": ("v1", RESEARCH_SYSTEM_PROMPT_V1),
    "answer_question": ("v1", ANSWER_QUESTION_PROMPT_V1),
    "ordinance_check_system": ("v1", ORDINANCE_CHECK_SYSTEM_V1),
    "ordinance_check": ("v1", ORDINANCE_CHECK_PROMPT_V1),
    "content_validation": ("v1", CONTENT_VALIDATION_PROMPT_V1),
    "section_analysis": ("v1", SECTION_ANALYSIS_PROMPT_V1),
    "records_summary": ("v1", RECORDS_SUMMARY_PROMPT_V1),
}


def get_active_prompt(name: str) -> str:
    """Return the active prompt text for a given prompt name.

    Args:
        name: Prompt identifier (e.g., "section_analysis").

    Returns:
        The prompt template string.

    Raises:
        KeyError: If prompt name is not registered.
    """
    if name not in _PROMPT_REGISTRY:
        raise KeyError(f"Unknown prompt: {name!r}. Available: {list(_PROMPT_REGISTRY.keys())}")
    return _PROMPT_REGISTRY[name][1]


def get_prompt_version(name: str) -> str:
    """Return the version tag for a given prompt name."""
    if name not in _PROMPT_REGISTRY:
        raise KeyError(f"Unknown prompt: {name!r}. Available: {list(_PROMPT_REGISTRY.keys())}")
    return _PROMPT_REGISTRY[name][0]


def render_prompt(name: str, **values: str) -> str:
    return get_active_prompt(name).format(**values)


def list_prompts() -> list[dict[str, str]]:
    """List all registered prompts with name and version."""
    return [{"name": name, "version": ver} for name, (ver, _) in _PROMPT_REGISTRY.items()]


def log_prompt_to_run(name: str) -> None:
    """Log the active prompt text as an MLflow artifact for the current run."""
    version, text = _PROMPT_REGISTRY[name]
    log_text(text, f"prompts/{name}_{version}.txt")
    set_tag(f"prompt_{name}_version", version)
    logger.debug("Logged prompt %s (%s) to MLflow run", name, version)
