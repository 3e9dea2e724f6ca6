"""List Gemini models that accept generateContent for the configured key."""

import sys

from google.genai import errors as genai_errors

from app.core.config import get_settings
from app.llm.provider import get_inference_model


def main() -> None:
    settings = get_settings()
    if not settings.llm.api_key.get_secret_value():
        print("GEMINI_API_KEY not found in environment", file=sys.stderr)
        sys.exit(1)

    try:
        models = get_inference_model(settings).list_generate_models()
    except genai_errors.APIError as exc:
        print(f"Error fetching models: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"Found {len(models)} models supporting generateContent:")
    for model in models:
        marker = " (configured)" if model["name"] == settings.llm.model else ""
        print(f"  {model['name']}  {model['display_name']}{marker}")


if __name__ == "__main__":
    main()
