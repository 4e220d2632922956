"""Generative-formula provider backed by Google Gemini."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import google.generativeai as genai

from .formula import MixConstraints, RawFormula
from .palette import TargetColor, base_color_names

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TEMPERATURE = 0.2


class ProviderError(RuntimeError):
    """The provider could not produce a usable formula."""


class FormulaProvider(Protocol):
    def request_formula(
        self, target: TargetColor, constraints: MixConstraints
    ) -> RawFormula: ...


def response_schema(names: tuple[str, ...]) -> dict[str, Any]:
    props = {
        name: {
            "type": "number",
            "description": f"The percentage of {name} paint required. Should be 0 if not used.",
        }
        for name in names
    }
    return {
        "type": "object",
        "properties": {
            "formula": {
                "type": "object",
                "description": "An object where keys are the base color names and "
                "values are their percentage contribution.",
                "properties": props,
            },
            "totalPercentage": {
                "type": "number",
                "description": "The sum of all percentages in the formula. This must be exactly 100.",
            },
        },
        "required": ["formula", "totalPercentage"],
    }


def build_prompt(
    target: TargetColor, constraints: MixConstraints, names: tuple[str, ...]
) -> str:
    hex_part = f" with the hex code {target.hex}" if target.hex else ""
    prompt = (
        "You are an expert paint mixing chemist. Your task is to provide a precise "
        f'mixing formula to create the color "{target.name}"{hex_part}.\n'
        f"You must use only the following available base colors: {', '.join(names)}.\n"
        "The formula must be represented as percentages. The sum of all percentages "
        "in the formula must equal 100.\n"
        "If a base color is not needed, its value must be 0."
    )
    if constraints.compensate_for_glass:
        mm = constraints.glass_thickness
        prompt += (
            "\n\nIMPORTANT CONTEXT: This paint will be applied onto standard clear float "
            f"glass used in construction. The selected glass thickness is {mm}mm.\n"
            "This type of glass has a natural, subtle green tint due to its iron oxide "
            "(FeO) content, and this tint is more pronounced in thicker glass.\n"
            "The generated formula MUST compensate for this green tint based on the "
            "specified thickness. A thicker glass (e.g., 10mm) requires more color "
            "correction than a thinner one (e.g., 3mm). The goal is for the final "
            f"appearance of the color *after being applied to the {mm}mm glass* to match "
            f'the target color "{target.name}" ({target.hex}). The paint itself in liquid '
            "form might need a slight tint adjustment (e.g., adding a bit of its "
            "complementary color, magenta/red) to neutralize the glass's green cast. "
            "Your final formula should reflect this professional adjustment."
        )
    return prompt


def parse_response(text: str | None) -> RawFormula:
    """Pull the `formula` object out of the model's JSON reply."""
    body = (text or "").strip()
    if not body:
        raise ProviderError("Received an empty response from the API.")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProviderError("Invalid formula format in API response.")

    formula = data.get("formula")
    if not isinstance(formula, dict):
        raise ProviderError("Invalid formula format in API response.")

    total = data.get("totalPercentage")
    try:
        off = round(float(total)) != 100
    except (TypeError, ValueError):
        off = True
    if off:
        # tolerated: the normalizer rescales whatever comes back
        log.warning("API returned a total percentage of %r, which is not 100.", total)
    return formula


class GeminiFormulaProvider:
    def __init__(
        self,
        api_key: str | None,
        model_name: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        *,
        model: Any = None,
        base_colors: tuple[str, ...] | None = None,
    ) -> None:
        self.base_colors = base_colors or base_color_names()
        self.model_name = model_name
        self.temperature = float(temperature)
        self._model = model
        if model is None:
            if not api_key:
                raise ProviderError("API key is required.")
            genai.configure(api_key=api_key)

    @property
    def model(self) -> Any:
        if self._model is None:
            self._model = genai.GenerativeModel(
                self.model_name,
                generation_config={
                    "response_mime_type": "application/json",
                    "response_schema": response_schema(self.base_colors),
                    "temperature": self.temperature,
                },
            )
        return self._model

    def request_formula(
        self, target: TargetColor, constraints: MixConstraints
    ) -> RawFormula:
        prompt = build_prompt(target, constraints, self.base_colors)
        try:
            response = self.model.generate_content(prompt)
            return parse_response(response.text)
        except ProviderError:
            raise
        except Exception as exc:
            log.exception("Error calling Gemini API")
            raise ProviderError(
                f"Failed to get paint formula from AI for color: {target.name}"
            ) from exc


__all__ = [
    "DEFAULT_MODEL",
    "FormulaProvider",
    "GeminiFormulaProvider",
    "ProviderError",
    "build_prompt",
    "parse_response",
    "response_schema",
]
