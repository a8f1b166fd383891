"""Prompt template for movie metadata generation."""

from app.schemas.generation import MovieCategory

_CATEGORY_LIST = ", ".join(c.value for c in MovieCategory)

PROMPT_TEMPLATE = """You are a professional movie critic and database editor. \
Generate accurate, cinematic details for the movie titled "{title}".

Respond with ONLY a valid JSON object (no markdown, no code blocks, no extra text) in exactly this format:
{{
  "description": "A full 500-800 word professional movie description covering plot, themes, \
cinematography, and why it's worth watching. Write in present tense, cinematic style.",
  "summary": "A concise 1-2 sentence preview description suitable for a movie card (max 120 characters).",
  "category": "One of: {categories}",
  "year": 2024,
  "director": "Director full name",
  "cast": "Top 3-5 main actors, comma separated",
  "rating": "IMDb-style rating like 8.2/10",
  "tags": "5-8 relevant keywords/tags, comma separated"
}}

Important rules:
- Only use factual, publicly known information about the movie
- If the movie is fictional or unknown, create plausible but clearly fictional details
- Do not include sensitive, harmful, or inappropriate content
- The category must be exactly one of the options listed above
- The year must be a valid integer (not a string)"""


def build_prompt(title: str) -> str:
    """Embed an already-validated, trimmed title into the generation prompt."""
    return PROMPT_TEMPLATE.format(title=title, categories=_CATEGORY_LIST)
