"""Movie metadata generation.

Turns a movie title into a fixed-schema GenerationResult:
  - Prompt template for the text-generation backends
  - Response validator (fence stripping, JSON parsing, per-field sanitization)
  - GenerationService composing admission, fallback and validation
"""
