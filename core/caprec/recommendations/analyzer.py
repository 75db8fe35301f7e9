"""Prompt analysis - keyword, intent and technology extraction.

Pattern-based and deterministic. The analysis is cheap, so it is
recomputed for every request rather than cached.
"""

from __future__ import annotations

import re
from typing import Any

from caprec.recommendations.schemas import Intent, PromptAnalysis

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


def _ci(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


INTENT_PATTERNS: list[tuple[re.Pattern[str], Intent]] = [
    (_ci(r"\b(build|create|implement|add|develop|make)\b"), Intent.BUILD),
    (_ci(r"\b(fix|debug|resolve|repair|troubleshoot)\b"), Intent.FIX),
    (_ci(r"\b(test|tests|testing|spec|unit test|e2e|integration)\b"), Intent.TEST),
    (_ci(r"\b(deploy|deployment|release|publish|ship)\b"), Intent.DEPLOY),
    (_ci(r"\b(refactor|clean|optimize|improve|reorganize)\b"), Intent.REFACTOR),
    (_ci(r"\b(document|docs|readme|comment|api docs)\b"), Intent.DOCUMENT),
    (_ci(r"\b(security|auth|authentication|authorization|secure)\b"), Intent.SECURITY),
    (_ci(r"\b(performance|optimize|speed|fast|slow)\b"), Intent.PERFORMANCE),
    (_ci(r"\b(database|db|sql|query|migration)\b"), Intent.DATABASE),
    (_ci(r"\b(api|endpoint|rest|graphql|grpc)\b"), Intent.API),
    (_ci(r"\b(ui|frontend|component|page|layout)\b"), Intent.FRONTEND),
    (_ci(r"\b(backend|server|service|microservice)\b"), Intent.BACKEND),
    (_ci(r"\b(style|css|styling|theme|design)\b"), Intent.STYLING),
    # React-style hook names are camelCase, so that half stays case-sensitive.
    (re.compile(r"(?i:\bhooks?\b)|\buse[A-Z]\w+\b"), Intent.HOOKS),
    (_ci(r"\b(state|store|redux|zustand|context)\b"), Intent.STATE_MANAGEMENT),
    (_ci(r"\b(form|input|validation|formik|react-hook-form)\b"), Intent.FORMS),
    (_ci(r"\b(animation|animate|motion|framer)\b"), Intent.ANIMATION),
    (_ci(r"\b(ci|cd|pipeline|workflow|github action)\b"), Intent.CICD),
    (_ci(r"\b(config|configuration|setup|initialize)\b"), Intent.CONFIG),
    (_ci(r"\b(error|exception|handling|catch|try)\b"), Intent.ERROR_HANDLING),
]

# (pattern, canonical technology, category)
TECHNOLOGY_PATTERNS: list[tuple[re.Pattern[str], str, str]] = [
    # Frontend
    (_ci(r"\b(react|reactjs|react\.js)\b"), "react", "frontend"),
    (_ci(r"\b(vue|vuejs|vue\.js)\b"), "vue", "frontend"),
    (_ci(r"\b(angular)\b"), "angular", "frontend"),
    (_ci(r"\b(svelte|sveltekit)\b"), "svelte", "frontend"),
    (_ci(r"\b(solidjs)\b"), "solid", "frontend"),
    (_ci(r"\b(qwik)\b"), "qwik", "frontend"),
    (_ci(r"\b(htmx)\b"), "htmx", "frontend"),
    # Meta-frameworks
    (_ci(r"\b(nextjs|next\.js)\b"), "nextjs", "framework"),
    (_ci(r"\b(nuxt|nuxtjs|nuxt\.js)\b"), "nuxt", "framework"),
    (_ci(r"\b(remix)\b"), "remix", "framework"),
    (_ci(r"\b(astro)\b"), "astro", "framework"),
    (_ci(r"\b(gatsby)\b"), "gatsby", "framework"),
    (_ci(r"\b(django)\b"), "django", "framework"),
    (_ci(r"\b(flask)\b"), "flask", "framework"),
    (_ci(r"\b(fastapi)\b"), "fastapi", "framework"),
    # Backend
    (_ci(r"\b(node|nodejs|node\.js)\b"), "nodejs", "runtime"),
    (_ci(r"\b(express|expressjs)\b"), "express", "backend"),
    (_ci(r"\b(fastify)\b"), "fastify", "backend"),
    (_ci(r"\b(nestjs)\b"), "nestjs", "backend"),
    (_ci(r"\b(hono)\b"), "hono", "backend"),
    (_ci(r"\b(koa)\b"), "koa", "backend"),
    (_ci(r"\b(deno)\b"), "deno", "runtime"),
    (_ci(r"\b(bun)\b"), "bun", "runtime"),
    # Databases
    (_ci(r"\b(postgres|postgresql|pg)\b"), "postgresql", "database"),
    (_ci(r"\b(mysql|mariadb)\b"), "mysql", "database"),
    (_ci(r"\b(mongodb|mongo)\b"), "mongodb", "database"),
    (_ci(r"\b(redis)\b"), "redis", "database"),
    (_ci(r"\b(sqlite)\b"), "sqlite", "database"),
    (_ci(r"\b(prisma)\b"), "prisma", "orm"),
    (_ci(r"\b(drizzle)\b"), "drizzle", "orm"),
    (_ci(r"\b(typeorm)\b"), "typeorm", "orm"),
    (_ci(r"\b(sqlalchemy)\b"), "sqlalchemy", "orm"),
    # Languages
    (_ci(r"\b(typescript|ts)\b"), "typescript", "language"),
    (_ci(r"\b(javascript|js)\b"), "javascript", "language"),
    (_ci(r"\b(python|py)\b"), "python", "language"),
    (_ci(r"\b(golang)\b"), "go", "language"),
    (_ci(r"\b(rust)\b"), "rust", "language"),
    # Testing
    (_ci(r"\b(jest)\b"), "jest", "testing"),
    (_ci(r"\b(vitest)\b"), "vitest", "testing"),
    (_ci(r"\b(pytest)\b"), "pytest", "testing"),
    (_ci(r"\b(playwright)\b"), "playwright", "testing"),
    (_ci(r"\b(cypress)\b"), "cypress", "testing"),
    (_ci(r"\b(testing-library|testing library)\b"), "testing-library", "testing"),
    # Styling
    (_ci(r"\b(tailwind|tailwindcss)\b"), "tailwind", "styling"),
    (_ci(r"\b(sass|scss)\b"), "sass", "styling"),
    (_ci(r"\b(styled-components)\b"), "styled-components", "styling"),
    (_ci(r"\b(emotion)\b"), "emotion", "styling"),
    (_ci(r"\b(css modules)\b"), "css-modules", "styling"),
    # UI libraries
    (_ci(r"\b(shadcn|shadcn/ui)\b"), "shadcn", "ui-library"),
    (_ci(r"\b(radix|radix-ui)\b"), "radix", "ui-library"),
    (_ci(r"\b(chakra|chakra-ui)\b"), "chakra", "ui-library"),
    (_ci(r"\b(material-ui|mui)\b"), "material-ui", "ui-library"),
    (_ci(r"\b(mantine)\b"), "mantine", "ui-library"),
    (_ci(r"\b(ant-design|antd)\b"), "ant-design", "ui-library"),
    # State management
    (_ci(r"\b(zustand)\b"), "zustand", "state"),
    (_ci(r"\b(redux|redux-toolkit|rtk)\b"), "redux", "state"),
    (_ci(r"\b(jotai)\b"), "jotai", "state"),
    (_ci(r"\b(recoil)\b"), "recoil", "state"),
    (_ci(r"\b(mobx)\b"), "mobx", "state"),
    (_ci(r"\b(tanstack-query|react-query)\b"), "tanstack-query", "state"),
    (_ci(r"\b(swr)\b"), "swr", "state"),
    # Infrastructure
    (_ci(r"\b(docker)\b"), "docker", "infrastructure"),
    (_ci(r"\b(kubernetes|k8s)\b"), "kubernetes", "infrastructure"),
    (_ci(r"\b(vercel)\b"), "vercel", "platform"),
    (_ci(r"\b(netlify)\b"), "netlify", "platform"),
    (_ci(r"\b(aws|amazon web services)\b"), "aws", "cloud"),
    (_ci(r"\b(gcp|google cloud)\b"), "gcp", "cloud"),
    (_ci(r"\b(azure)\b"), "azure", "cloud"),
    # API and protocols
    (_ci(r"\b(graphql|gql)\b"), "graphql", "api"),
    (_ci(r"\b(trpc|t-rpc)\b"), "trpc", "api"),
    (_ci(r"\b(grpc)\b"), "grpc", "api"),
    (_ci(r"\b(websocket|websockets)\b"), "websocket", "protocol"),
    # Auth
    (_ci(r"\b(auth0)\b"), "auth0", "auth"),
    (_ci(r"\b(clerk)\b"), "clerk", "auth"),
    (_ci(r"\b(nextauth|auth\.js)\b"), "nextauth", "auth"),
    (_ci(r"\b(supabase)\b"), "supabase", "baas"),
    (_ci(r"\b(firebase)\b"), "firebase", "baas"),
    # AI
    (_ci(r"\b(openai|gpt|chatgpt)\b"), "openai", "ai"),
    (_ci(r"\b(anthropic|claude)\b"), "anthropic", "ai"),
    (_ci(r"\b(langchain)\b"), "langchain", "ai"),
    # Validation
    (_ci(r"\b(zod)\b"), "zod", "validation"),
    (_ci(r"\b(yup)\b"), "yup", "validation"),
    (_ci(r"\b(joi)\b"), "joi", "validation"),
    (_ci(r"\b(pydantic)\b"), "pydantic", "validation"),
]

ACTION_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (_ci(r"\b(add|adding)\b"), "add"),
    (_ci(r"\b(remove|delete|drop)\b"), "remove"),
    (_ci(r"\b(update|modify|change)\b"), "update"),
    (_ci(r"\b(fix|repair|resolve)\b"), "fix"),
    (_ci(r"\b(create|make|build)\b"), "create"),
    (_ci(r"\b(setup|configure|init)\b"), "setup"),
    (_ci(r"\b(migrate|convert|transform)\b"), "migrate"),
    (_ci(r"\b(upgrade|update version)\b"), "upgrade"),
    (_ci(r"\b(integrate|connect|hook up)\b"), "integrate"),
    (_ci(r"\b(split|separate|extract)\b"), "split"),
    (_ci(r"\b(merge|combine|join)\b"), "merge"),
]

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
        "her", "was", "one", "our", "out", "has", "have", "been", "were", "they",
        "this", "that", "with", "from", "will", "would", "could", "should",
        "what", "when", "where", "which", "there", "their", "them", "then",
        "just", "like", "some", "more", "also", "into", "want", "need", "help",
        "please", "thanks", "thank", "make", "made", "get", "got", "using",
    }
)  # fmt: skip

_WORD_RE = re.compile(r"\b[a-z]{3,}\b")
_MIN_WORD_LENGTH = 4


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze_prompt(prompt: Any) -> PromptAnalysis:
    """Extract keywords, intents, technologies and actions from *prompt*.

    Never raises: anything that is not a non-empty string yields an empty
    analysis, which callers treat as "nothing to recommend".
    """
    if not isinstance(prompt, str) or not prompt.strip():
        return PromptAnalysis()

    keywords: dict[str, None] = {}
    intents: dict[Intent, None] = {}
    technologies: dict[str, None] = {}
    frameworks: dict[str, None] = {}
    actions: dict[str, None] = {}

    for pattern, intent in INTENT_PATTERNS:
        if pattern.search(prompt):
            intents[intent] = None
            keywords[intent.value] = None

    for pattern, tech, category in TECHNOLOGY_PATTERNS:
        if pattern.search(prompt):
            technologies[tech] = None
            keywords[tech] = None
            if category == "framework":
                frameworks[tech] = None

    for pattern, action in ACTION_PATTERNS:
        if pattern.search(prompt):
            actions[action] = None

    for word in _WORD_RE.findall(prompt.lower()):
        if len(word) >= _MIN_WORD_LENGTH and word not in STOP_WORDS:
            keywords[word] = None

    return PromptAnalysis(
        keywords=tuple(keywords),
        intents=tuple(intents),
        technologies=tuple(technologies),
        frameworks=tuple(frameworks),
        actions=tuple(actions),
    )
