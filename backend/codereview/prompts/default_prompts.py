"""Default prompts for code review analysis."""

LANGUAGE_PROFILES = {
    "NET": {
        "language_name": ".NET / C#",
        "role": "senior .NET developer",
        "focus": """- PascalCase for types and public members, camelCase for locals and parameters
- async/await used end to end, no .Result or .Wait() on tasks
- SOLID principles and constructor dependency injection
- IDisposable resources released with using
- Nullable reference types and guard clauses on public APIs""",
    },
    "Python": {
        "language_name": "Python",
        "role": "senior Python developer",
        "focus": """- PEP 8 layout and snake_case naming
- Type hints on public functions
- asyncio used correctly, no blocking calls inside coroutines
- Context managers for files, locks and connections
- Specific exceptions instead of bare except""",
    },
}

DEFAULT_LANGUAGE = "NET"

SYSTEM_PROMPT = "You are a {role} reviewing code changes. Provide concise, actionable feedback."

OUTPUT_RULES = """Answer with a numbered list, one issue per item. For every item:
1. Start with exactly one severity: Critical, Warning, Suggestion or Style
2. Name exactly one category: Security, Performance, Error handling, Style, Maintainability, Readability or General
3. Give the file and line, e.g. "in src/Service.cs line 42"
4. End with a line "Suggestion: <how to fix it>"

Example:
1. Critical: Security - SQL injection in src/UserRepository.cs line 42
Suggestion: use parameterized queries

If there is nothing to report, answer with: No issues found."""

DEFAULT_PROMPTS = {
    "diff": """Review the following {language_name} code changes (git diff).

Focus on:
{focus}

Coding standards:
{standards}

Requirements:
{requirements}

Code changes:
{content}

""" + OUTPUT_RULES,

    "single_file": """Review the following {language_name} source file as a whole.

Focus on:
{focus}

Coding standards:
{standards}

Requirements:
{requirements}

File content:
{content}

""" + OUTPUT_RULES,
}

MISSING_STANDARDS = "Follow general {language_name} best practices"
MISSING_REQUIREMENTS = "Follow {language_name} best practices and coding standards"


def get_language_profile(language: str) -> dict:
    """Return the profile for a language tag, falling back to .NET."""
    return LANGUAGE_PROFILES.get(language or DEFAULT_LANGUAGE, LANGUAGE_PROFILES[DEFAULT_LANGUAGE])


def build_system_prompt(language: str) -> str:
    return SYSTEM_PROMPT.replace("{role}", get_language_profile(language)["role"])


def build_review_prompt(
    content: str,
    documents: list,
    requirements: str,
    language: str,
    is_file_content: bool = False,
) -> str:
    """Fill the diff or single-file template.

    Uses plain replacement so braces inside the reviewed code are left alone.
    """
    profile = get_language_profile(language)
    language_name = profile["language_name"]

    standards = "\n\n".join(doc.strip() for doc in documents if doc and doc.strip())
    if not standards:
        standards = MISSING_STANDARDS.replace("{language_name}", language_name)
    if not requirements or not requirements.strip():
        requirements = MISSING_REQUIREMENTS.replace("{language_name}", language_name)

    template = DEFAULT_PROMPTS["single_file" if is_file_content else "diff"]
    # content last, so placeholders inside it are never expanded
    return (
        template
        .replace("{language_name}", language_name)
        .replace("{focus}", profile["focus"])
        .replace("{standards}", standards)
        .replace("{requirements}", requirements.strip())
        .replace("{content}", content)
    )
